"""
Unit tests for query planning.
"""

import pytest

from fusion.core.exceptions import IndexMissing, IndexNotReady, ValidationError
from fusion.core.index import PRIMARY_INDEX_NAME, info_to_name
from fusion.core.table import Table
from fusion.query.planner import QueryPlan, make_query_plan
from fusion.storage.base import MAXVAL, MINVAL, BoundMode, OrderDirection


def index_name(*fields: str) -> str:
    return info_to_name({"fields": list(fields), "geo": False, "multi": None})


def make_table(*indexes, pending=()):
    """Build a table whose given indexes are ready, without a backend."""
    table = Table("posts", "db")
    table.collection = "posts"
    table.update_indexes(
        [index_name(*fields) for fields in indexes]
        + [index_name(*fields) for fields in pending]
    )
    for fields in indexes:
        table.indexes[index_name(*fields)].readiness.resolve()
    return table


class TestPrimaryPlans:
    """Plans over the primary index."""

    def test_whole_collection(self):
        """Test a query without predicates scans everything."""
        plan = make_query_plan({}, make_table())

        assert isinstance(plan, QueryPlan)
        assert len(plan.ranges) == 1
        rng = plan.ranges[0]
        assert rng.index == PRIMARY_INDEX_NAME
        assert rng.lower is MINVAL
        assert rng.upper is MAXVAL
        assert plan.limit is None
        assert not plan.is_union

    def test_find_by_id(self):
        """Test a single-document lookup by id."""
        plan = make_query_plan({"find": {"id": 3}}, make_table())
        rng = plan.ranges[0]

        assert rng.index == PRIMARY_INDEX_NAME
        assert rng.lower == 3
        assert rng.upper == 3
        assert plan.limit == 1

    def test_find_all_single_id_limited(self):
        """Test a lone id predicate can match at most one document."""
        plan = make_query_plan({"find_all": [{"id": 1}]}, make_table())
        assert plan.limit == 1

        plan = make_query_plan({"find_all": [{"id": 1}], "limit": 0}, make_table())
        assert plan.limit == 0

    def test_find_all_many_ids_unlimited(self):
        """Test several id predicates are not limited."""
        plan = make_query_plan({"find_all": [{"id": 1}, {"id": 2}]}, make_table())

        assert plan.limit is None
        assert plan.is_union
        assert [r.lower for r in plan.ranges] == [1, 2]

    def test_order_by_id(self):
        """Test ordering by the primary key."""
        plan = make_query_plan({"order": [["id"], "descending"], "limit": 2}, make_table())
        rng = plan.ranges[0]

        assert rng.index == PRIMARY_INDEX_NAME
        assert rng.order is OrderDirection.DESCENDING
        assert plan.limit == 2


class TestSecondaryPlans:
    """Plans over secondary indexes."""

    def test_find_by_field(self):
        """Test a single document found by a secondary field."""
        table = make_table(("owner",))
        plan = make_query_plan({"find": {"owner": "ann"}}, table)
        rng = plan.ranges[0]

        assert rng.index == index_name("owner")
        assert rng.lower == ["ann"]
        assert rng.upper == ["ann"]
        assert plan.limit == 1

    def test_find_all_union(self):
        """Test one range per predicate."""
        table = make_table(("owner",))
        plan = make_query_plan({"find_all": [{"owner": "ann"}, {"owner": "bob"}]}, table)

        assert plan.is_union
        assert [r.lower for r in plan.ranges] == [["ann"], ["bob"]]
        assert plan.limit is None

    def test_trailing_fields_span_full_range(self):
        """Test fields after the predicate are unbounded."""
        table = make_table(("owner", "score"))
        plan = make_query_plan({"find_all": [{"owner": "ann"}]}, table)
        rng = plan.ranges[0]

        assert rng.lower == ["ann", MINVAL]
        assert rng.upper == ["ann", MAXVAL]

    def test_predicate_with_order(self):
        """Test ordering within a predicate."""
        table = make_table(("owner", "score"))
        plan = make_query_plan(
            {"find_all": [{"owner": "ann"}], "order": [["score"], "ascending"]},
            table,
        )
        rng = plan.ranges[0]

        assert rng.index == index_name("owner", "score")
        assert rng.order is OrderDirection.ASCENDING

    def test_above_open(self):
        """Test an open lower bound."""
        table = make_table(("owner", "score"))
        plan = make_query_plan(
            {
                "find_all": [{"owner": "ann"}],
                "order": [["score"], "ascending"],
                "above": [{"score": 10}, "open"],
            },
            table,
        )
        rng = plan.ranges[0]

        assert rng.lower == ["ann", 10]
        assert rng.left_bound is BoundMode.OPEN
        assert rng.upper == ["ann", MAXVAL]
        assert rng.right_bound is BoundMode.CLOSED

    def test_bounds_on_trailing_fields(self):
        """Test sentinel defaults for unconstrained trailing fields."""
        table = make_table(("score", "tag"))

        def bounds(above_mode, below_mode):
            plan = make_query_plan(
                {
                    "above": [{"score": 10}, above_mode],
                    "below": [{"score": 20}, below_mode],
                },
                table,
            )
            return plan.ranges[0].lower, plan.ranges[0].upper

        assert bounds("closed", "closed") == ([10, MINVAL], [20, MAXVAL])
        assert bounds("open", "open") == ([10, MAXVAL], [20, MINVAL])

    def test_below_only(self):
        """Test a range with only an upper bound."""
        table = make_table(("score",))
        plan = make_query_plan({"below": [{"score": 20}, "open"]}, table)
        rng = plan.ranges[0]

        assert rng.lower == [MINVAL]
        assert rng.upper == [20]
        assert rng.right_bound is BoundMode.OPEN
        assert rng.order is None


class TestPlanValidation:
    """Planning errors."""

    def test_above_not_on_order_field(self):
        """Test above must bound the first order field."""
        table = make_table(("score",), ("tag",))
        with pytest.raises(ValidationError, match="\"above\" must be on the same field"):
            make_query_plan(
                {"order": [["score"], "ascending"], "above": [{"tag": "a"}, "closed"]},
                table,
            )

    def test_below_not_on_order_field(self):
        """Test below must bound the first order field."""
        table = make_table(("score",))
        with pytest.raises(ValidationError, match="\"below\" must be on the same field"):
            make_query_plan(
                {"order": [["score"], "ascending"], "below": [{"tag": "a"}, "closed"]},
                table,
            )

    def test_predicate_and_order_conflict(self):
        """Test a field cannot be both matched and ordered."""
        table = make_table(("score",))
        with pytest.raises(ValidationError, match="cannot be used in \"order\""):
            make_query_plan(
                {"find_all": [{"score": 1}], "order": [["score"], "ascending"]},
                table,
            )

    def test_find_excludes_other_options(self):
        """Test find cannot be combined with ranges or limits."""
        table = make_table(("owner",))
        with pytest.raises(ValidationError, match="\"limit\" is not allowed"):
            make_query_plan({"find": {"owner": "ann"}, "limit": 3}, table)

    def test_missing_index(self):
        """Test planning without a usable index."""
        with pytest.raises(IndexMissing):
            make_query_plan({"find_all": [{"owner": "ann"}]}, make_table())

    def test_index_not_ready(self):
        """Test planning with only a building index."""
        table = make_table(pending=[("owner",)])
        with pytest.raises(IndexNotReady):
            make_query_plan({"find_all": [{"owner": "ann"}]}, table)


class TestPlanOutput:
    """Plan conversion tests."""

    def test_to_query(self):
        """Test building the backend query."""
        table = make_table(("owner",))
        plan = make_query_plan({"find_all": [{"owner": "ann"}], "limit": 4}, table)
        query = plan.to_query()

        assert query.table == "posts"
        assert query.limit == 4
        assert query.ranges == plan.ranges

    def test_explain(self):
        """Test explain output."""
        table = make_table(("owner",))
        plan = make_query_plan({"find_all": [{"owner": "ann"}, {"owner": "bob"}]}, table)
        text = plan.explain()

        assert "Union:" in text
        assert "Collection: posts" in text
        assert text.count("between") == 2

    def test_to_dict(self):
        """Test dictionary conversion."""
        plan = make_query_plan({}, make_table())
        info = plan.to_dict()

        assert info["ranges"][0]["lower"] == "MINVAL"
        assert info["ranges"][0]["upper"] == "MAXVAL"
