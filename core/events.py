# Tiltify event source definition published on the event bus
from core.event_bus import EventDefinition, EventSourceDefinition

EVENT_SOURCE_ID = "tiltify"
DONATION_EVENT_ID = "donation"

TILTIFY_EVENT_SOURCE = EventSourceDefinition(
    id=EVENT_SOURCE_ID,
    name="Tiltify",
    events=[
        EventDefinition(
            id=DONATION_EVENT_ID,
            name="Donation",
            description="When someone donates to you via Tiltify.",
            manual_metadata={
                "donationId": 0,
                "from": "Tiltify",
                "donationAmount": 4.2,
                "rewardId": None,
                "comment": "Thanks for the stream!",
                "pollOptionId": None,
                "challengeId": None,
                "campaignInfo": {
                    "id": "",
                    "name": "My Campaign",
                    "cause": "Save the Children",
                    "causeLegalName": "Save the Children Inc",
                    "fundraisingGoal": 1000,
                    "originalGoal": 500,
                    "supportingRaised": 500,
                    "amountRaised": 1000,
                    "totalRaised": 1500,
                },
            },
        ),
    ],
)
