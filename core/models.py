# Core data models for the relay
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.errors import UpstreamError


def _require_data(raw: Any, what: str) -> Dict[str, Any]:
    if not isinstance(raw, dict) or not isinstance(raw.get("data"), dict):
        raise UpstreamError(f"Malformed {what} payload")
    return raw["data"]


@dataclass(frozen=True)
class CampaignContext:
    campaign_id: str
    name: str
    fundraising_goal: float
    original_goal: float
    supporting_raised: float
    amount_raised: float
    total_raised: float
    cause: str
    cause_legal_name: str

    @classmethod
    def from_api(cls, campaign_id: str, campaign_raw: Any, cause_raw: Any) -> "CampaignContext":
        campaign = _require_data(campaign_raw, "campaign")
        cause = _require_data(cause_raw, "cause")
        return cls(
            campaign_id=str(campaign_id),
            name=str(campaign.get("name", "")),
            fundraising_goal=campaign.get("fundraiserGoalAmount", 0),
            original_goal=campaign.get("originalFundraiserGoal", 0),
            supporting_raised=campaign.get("supportingAmountRaised", 0),
            amount_raised=campaign.get("amountRaised", 0),
            total_raised=campaign.get("totalAmountRaised", 0),
            cause=str(cause.get("name", "")),
            cause_legal_name=str(cause.get("legalName", "")),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.campaign_id,
            "name": self.name,
            "cause": self.cause,
            "causeLegalName": self.cause_legal_name,
            "fundraisingGoal": self.fundraising_goal,
            "originalGoal": self.original_goal,
            "supportingRaised": self.supporting_raised,
            "amountRaised": self.amount_raised,
            "totalRaised": self.total_raised,
        }


@dataclass(frozen=True)
class Donation:
    id: int
    amount: float
    name: str
    comment: Optional[str] = None
    reward_id: Optional[int] = None
    poll_option_id: Optional[int] = None
    challenge_id: Optional[int] = None
    completed_at: float = 0

    @classmethod
    def from_api(cls, raw: Any) -> "Donation":
        if not isinstance(raw, dict) or raw.get("id") is None:
            raise UpstreamError(f"Malformed donation record: {raw!r}")
        return cls(
            id=raw["id"],
            amount=raw.get("amount", 0),
            name=raw.get("name") or "Anonymous",
            comment=raw.get("comment"),
            reward_id=raw.get("rewardId"),
            poll_option_id=raw.get("pollOptionId"),
            challenge_id=raw.get("challengeId"),
            completed_at=raw.get("completedAt") or 0,
        )


@dataclass(frozen=True)
class DonationEvent:
    """One emitted donation, enriched with the campaign it was made to."""

    donation_id: int
    name: str
    amount: float
    comment: Optional[str]
    reward_id: Optional[int]
    poll_option_id: Optional[int]
    challenge_id: Optional[int]
    campaign: CampaignContext

    @classmethod
    def build(cls, donation: Donation, campaign: CampaignContext) -> "DonationEvent":
        return cls(
            donation_id=donation.id,
            name=donation.name,
            amount=donation.amount,
            comment=donation.comment,
            reward_id=donation.reward_id,
            poll_option_id=donation.poll_option_id,
            challenge_id=donation.challenge_id,
            campaign=campaign,
        )

    def to_payload(self) -> Dict[str, Any]:
        # Key names match what downstream filters and variables read
        return {
            "donationId": self.donation_id,
            "from": self.name,
            "donationAmount": self.amount,
            "comment": self.comment,
            "rewardId": self.reward_id,
            "pollOptionId": self.poll_option_id,
            "challengeId": self.challenge_id,
            "campaignInfo": self.campaign.to_payload(),
        }


@dataclass(frozen=True)
class DeliveryState:
    campaign_id: str
    last_id: Optional[int] = None
    delivered_ids: List[int] = field(default_factory=list)
