from src.oil_inventory import MemoryBackend, load_memberships, role_label, select_team

MEMBERSHIPS = [
    {"user_id": "u1", "team_id": "t-1", "team_name": "Frantoio", "role": "owner"},
    {"user_id": "u1", "team_id": "t-2", "team_name": "", "role": "viewer"},
    {"user_id": "u1", "team_id": "", "team_name": "Broken", "role": "editor"},
    {"user_id": "u2", "team_id": "t-3", "team_name": "Other", "role": "editor"},
]


def test_load_memberships_for_user():
    memberships = load_memberships(MemoryBackend(memberships=MEMBERSHIPS), "u1")
    assert memberships == [
        {"team_id": "t-1", "team_name": "Frantoio", "role": "owner"},
        {"team_id": "t-2", "team_name": "t-2", "role": "viewer"},
    ]


def test_unknown_user_has_no_teams():
    assert load_memberships(MemoryBackend(memberships=MEMBERSHIPS), "nobody") == []


def test_select_team_prefers_cached_membership():
    memberships = load_memberships(MemoryBackend(memberships=MEMBERSHIPS), "u1")
    assert select_team(memberships, "t-2") == "t-2"
    assert select_team(memberships, "t-3") == "t-1"
    assert select_team(memberships) == "t-1"
    assert select_team([], "t-1") is None


def test_role_label():
    assert role_label("owner") == "Owner"
    assert role_label("auditor") == "auditor"
    assert role_label("") == "-"
