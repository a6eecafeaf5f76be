"""Replace variables exposing single fields of a donation event.

Each handle reads one field of the event metadata, falling back to a
default when the field is missing or empty.
"""

from __future__ import annotations

from dataclasses import dataclass
from string import Formatter
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class ReplaceVariable:
    handle: str
    description: str
    path: Tuple[str, ...]
    default: Any
    output: str = "text"

    def evaluate(self, meta: Optional[Dict[str, Any]]) -> Any:
        value: Any = meta or {}
        for key in self.path:
            if not isinstance(value, dict):
                return self.default
            value = value.get(key)
        return value or self.default


def _campaign(handle: str, description: str, key: str, default: Any, output: str) -> ReplaceVariable:
    return ReplaceVariable(handle, description, ("campaignInfo", key), default, output)


VARIABLES: List[ReplaceVariable] = [
    ReplaceVariable("tiltifyDonationFrom", "The name of who sent a Tiltify donation", ("from",), "Unknown User"),
    ReplaceVariable("tiltifyDonationAmount", "The amount of a donation from Tiltify", ("donationAmount",), 0, "number"),
    ReplaceVariable("tiltifyDonationRewardId", "The reward ID of a donation from Tiltify", ("rewardId",), -1, "number"),
    ReplaceVariable("tiltifyDonationComment", "The comment of a donation from Tiltify", ("comment",), ""),
    _campaign("tiltifyDonationCampaignName",
              "The name of the campaign that received a donation from Tiltify", "name", "", "text"),
    _campaign("tiltifyDonationCampaignCause",
              "The cause of the campaign that received a donation from Tiltify", "cause", "", "text"),
    _campaign("tiltifyDonationCampaigCauseLegal",
              "The legal cause name of the campaign that received a donation from Tiltify",
              "causeLegalName", "", "text"),
    _campaign("tiltifyDonationCampaignFundraisingGoal",
              "The fundraising goal of the cause that received a donation from Tiltify",
              "fundraisingGoal", 0, "number"),
    _campaign("tiltifyDonationCampaignOriginalGoal",
              "The original goal set by the fundraiser of the campaign that received a donation from Tiltify",
              "originalGoal", 0, "number"),
    _campaign("tiltifyDonationCampaignSupportingRaised",
              "The amount of money raised by supporting campaigns that received a donation from Tiltify",
              "supportingRaised", 0, "number"),
    _campaign("tiltifyDonationCampaignRaised",
              "The amount of money raised by the campaign that received a donation from Tiltify",
              "amountRaised", 0, "number"),
    _campaign("tiltifyDonationCampaignTotalRaised",
              "The total amount of money raised by the cause that received a donation from Tiltify",
              "totalRaised", 0, "number"),
]

_REGISTRY: Dict[str, ReplaceVariable] = {variable.handle: variable for variable in VARIABLES}


def evaluate(handle: str, meta: Optional[Dict[str, Any]]) -> Any:
    try:
        variable = _REGISTRY[handle]
    except KeyError:
        raise KeyError(f"Unknown replace variable: {handle}") from None
    return variable.evaluate(meta)


def render(template: str, meta: Optional[Dict[str, Any]]) -> str:
    """Fill ``{handle}`` placeholders in ``template``; unknown handles are left as written."""
    values = {}
    for _, field_name, _, _ in Formatter().parse(template):
        if field_name and field_name in _REGISTRY:
            values[field_name] = evaluate(field_name, meta)
    return template.format_map(_Passthrough(values))


class _Passthrough(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"
