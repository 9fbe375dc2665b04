from volunteer_hours.data_processing.identities import choose_canonical_name, resolve_identities
from volunteer_hours.data_processing.schemas import NAME_COLLISION, UNUSABLE_NAME
from volunteer_hours.utils.config import build_alias_table


class TestCanonicalName:
    def test_alias_hit_wins_over_first_seen(self):
        table = build_alias_table({"jg": "J Graves"})
        assert choose_canonical_name(["Jay", "JG"], table) == "J Graves"

    def test_first_observed_without_alias(self):
        assert choose_canonical_name(["Jay G", "J Graves"], {}) == "Jay G"


class TestResolveIdentities:
    def test_groups_by_identifier_not_name(self):
        res = resolve_identities([("u1", "Ann Lee"), ("u1", "Annie Lee"), ("u2", "Bob Ray")], {})
        assert list(res.identities) == ["u1", "u2"]
        assert res.identities["u1"].canonical_name == "Ann Lee"
        assert res.identities["u1"].alias_names_seen == ("Ann Lee", "Annie Lee")

    def test_alias_variants_merge_to_one_name(self):
        table = build_alias_table({"d BURNETT": "D Burnett"})
        res = resolve_identities([("u1", "d burnett")], table)
        assert res.identities["u1"].canonical_name == "D Burnett"

    def test_unusable_names_excluded(self):
        res = resolve_identities([("u1", "A"), ("u2", ""), ("u3", "Bob Ray")], {})
        assert list(res.identities) == ["u3"]
        assert res.excluded_keys == ("u1", "u2")
        assert [d.code for d in res.diagnostics] == [UNUSABLE_NAME, UNUSABLE_NAME]

    def test_name_collision_keeps_records_apart(self):
        res = resolve_identities([("u1", "Sam Hill"), ("u2", "Sam Hill")], {})
        assert res.identities["u1"].canonical_name == "Sam Hill"
        assert res.identities["u2"].canonical_name == "Sam Hill [u2]"
        assert [d.code for d in res.diagnostics] == [NAME_COLLISION]
