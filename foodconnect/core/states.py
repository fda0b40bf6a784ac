# "accepted"/"delivered" are stored for compatibility with older documents;
# nothing in the core transitions into them.
DONATION_STATES = [
    "available", "requested", "reserved", "completed",
    "expired", "cancelled", "accepted", "delivered",
]

REQUEST_STATES = [
    "requested", "reserved", "fulfilled", "cancelled",
    "rejected", "accepted", "delivered",
]

MEAL_TYPES = ["breakfast", "lunch", "dinner", "snacks", "fruits", "other"]

# donations an organization can still see and request
OPEN_DONATION_STATES = ["available", "requested", "reserved"]
CLOSED_DONATION_STATES = ["completed", "expired", "cancelled"]
# "completed" tab of the donor activity page; rejected/fulfilled are legacy values
HISTORY_DONATION_STATES = ["completed", "cancelled", "rejected", "fulfilled"]

ACTIVE_REQUEST_STATES = ["requested", "reserved"]
TERMINAL_REQUEST_STATES = ["fulfilled", "cancelled", "rejected"]

DONATION_TRANSITIONS = {
    ("available", "requested"):  {"by": ["organization"]},
    ("requested", "reserved"):   {"by": ["donor"]},
    ("reserved",  "completed"):  {"by": ["organization"]},
    ("reserved",  "available"):  {"by": ["organization"]},
    ("reserved",  "requested"):  {"by": ["organization"]},
    ("requested", "available"):  {"by": ["organization", "system"]},
    ("available", "expired"):    {"by": ["system"]},
}

REQUEST_TRANSITIONS = {
    ("requested", "reserved"):   {"by": ["donor"]},
    ("reserved",  "fulfilled"):  {"by": ["organization"]},
    ("requested", "cancelled"):  {"by": ["organization", "system"]},
    ("reserved",  "cancelled"):  {"by": ["organization"]},
    ("requested", "rejected"):   {"by": ["system"]},
    ("reserved",  "rejected"):   {"by": ["system"]},
}

def can_transition(table: dict, src: str, dst: str, actor: str) -> bool:
    rule = table.get((src, dst))
    if not rule:
        return False
    return actor in rule["by"]
