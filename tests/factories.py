from datetime import date

from cloudtrack_agent.models import Resource

TODAY = date(2024, 6, 10)


def make_resource(**overrides) -> Resource:
    data = {
        "id": "r1",
        "name": "web-01",
        "provider": "Hetzner",
        "type": "VPS",
        "cost": 5,
        "currency": "$",
        "billingCycle": "Monthly",
        "expiryDate": "2024-06-17",
    }
    data.update(overrides)
    return Resource.from_dict(data)
