"""Tests for pushdown planning."""

from sqlglot import parse_one

from sqloverlay.pushdown.extractor import ScopeExtractor
from sqloverlay.pushdown.models import PredicateKind, PushdownDestination
from sqloverlay.pushdown.optimizer import PredicateOptimizer


def _plan(sql, **kwargs):
    predicates, graph = ScopeExtractor().extract(parse_one(sql))
    return PredicateOptimizer(**kwargs).plan(predicates, graph)


def _derived(placed):
    return [p for p in placed if p.duplicate_of is not None]


class TestOuterJoinPlacement:
    """Tests for moving predicates into outer-join ON clauses."""

    def test_left_join_null_side_moves_to_on(self):
        """Test a predicate on the LEFT JOIN's right table goes to its ON clause."""
        placed = _plan(
            "SELECT * FROM CATENTRY CE LEFT JOIN CATENTDESC CD "
            "ON CE.CATENTRY_ID = CD.CATENTRY_ID WHERE CD.LANGUAGE_ID = -1"
        )
        (predicate,) = placed
        assert predicate.anchor == PushdownDestination.ON_CLAUSE
        assert predicate.join_index == 0

    def test_right_join_null_side_moves_to_on(self):
        """Test a predicate on the RIGHT JOIN's left table goes to its ON clause."""
        placed = _plan(
            "SELECT * FROM CATENTRY CE RIGHT JOIN STORECENT SC "
            "ON CE.CATENTRY_ID = SC.CATENTRY_ID WHERE CE.MARKFORDELETE = 0"
        )
        assert placed[0].destination == PushdownDestination.ON_CLAUSE

    def test_preserved_side_stays_in_where(self):
        """Test a predicate on the preserved side is not moved."""
        placed = _plan(
            "SELECT * FROM CATENTRY CE LEFT JOIN CATENTDESC CD "
            "ON CE.CATENTRY_ID = CD.CATENTRY_ID WHERE CE.MARKFORDELETE = 0"
        )
        assert placed[0].anchor == PushdownDestination.WHERE

    def test_multi_table_predicate_stays(self):
        """Test a predicate over two sources stays in WHERE."""
        placed = _plan(
            "SELECT * FROM A LEFT JOIN B ON A.X = B.X WHERE B.Y = A.Y"
        )
        assert placed[0].anchor == PushdownDestination.WHERE

    def test_unclassified_stays(self):
        """Test an unrecognised predicate stays in WHERE."""
        placed = _plan(
            "SELECT * FROM A LEFT JOIN B ON A.X = B.X WHERE B.Y IS NULL"
        )
        assert placed[0].kind == PredicateKind.UNCLASSIFIED
        assert placed[0].anchor == PushdownDestination.WHERE

    def test_full_join_not_moved(self):
        """Test FULL JOIN sides are never moved."""
        placed = _plan("SELECT * FROM A FULL JOIN B ON A.X = B.X WHERE B.Y = 1")
        assert placed[0].anchor == PushdownDestination.WHERE

    def test_disabled(self):
        """Test outer_join_on_clause=False keeps predicates in WHERE."""
        placed = _plan(
            "SELECT * FROM A LEFT JOIN B ON A.X = B.X WHERE B.Y = 1",
            outer_join_on_clause=False,
        )
        assert placed[0].anchor == PushdownDestination.WHERE

    def test_input_not_mutated(self):
        """Test planning returns new placements."""
        predicates, graph = ScopeExtractor().extract(
            parse_one("SELECT * FROM A LEFT JOIN B ON A.X = B.X WHERE B.Y = 1")
        )
        PredicateOptimizer().plan(predicates, graph)
        assert predicates[0].anchor == PushdownDestination.WHERE


class TestDuplication:
    """Tests for duplicating constant predicates across equality joins."""

    def test_inner_join_duplicate_in_where(self):
        """Test an equality constant is copied onto the joined column."""
        placed = _plan(
            "SELECT * FROM CATENTRY CE JOIN CATENTDESC CD "
            "ON CE.CATENTRY_ID = CD.CATENTRY_ID WHERE CE.CATENTRY_ID = 10683"
        )
        (duplicate,) = _derived(placed)
        assert duplicate.sql() == "CD.CATENTRY_ID = 10683"
        assert duplicate.anchor == PushdownDestination.WHERE
        assert duplicate.duplicate_of == 0
        assert duplicate.kind == PredicateKind.EQUALITY_CONSTANT

    def test_in_list_duplicate(self):
        """Test a multi-value constant is copied as an IN-list."""
        placed = _plan(
            "SELECT * FROM CATENTRY CE JOIN CATENTDESC CD "
            "ON CD.CATENTRY_ID = CE.CATENTRY_ID WHERE CE.CATENTRY_ID IN (1, 2)"
        )
        (duplicate,) = _derived(placed)
        assert duplicate.sql() == "CD.CATENTRY_ID IN (1, 2)"
        assert duplicate.kind == PredicateKind.IN_LIST

    def test_duplicate_is_independent(self):
        """Test the duplicate does not share nodes with the original."""
        placed = _plan(
            "SELECT * FROM A JOIN B ON A.X = B.X WHERE A.X = 5"
        )
        original, duplicate = placed
        original.expression.set("expression", parse_one("6"))
        assert duplicate.sql() == "B.X = 5"

    def test_left_join_duplicate_in_on_clause(self):
        """Test a copy onto a LEFT JOIN's null side lands in its ON clause."""
        placed = _plan(
            "SELECT * FROM CATENTRY CE LEFT JOIN CATENTDESC CD "
            "ON CE.CATENTRY_ID = CD.CATENTRY_ID WHERE CE.CATENTRY_ID = 10683"
        )
        (duplicate,) = _derived(placed)
        assert duplicate.anchor == PushdownDestination.ON_CLAUSE
        assert duplicate.join_index == 0

    def test_not_copied_against_outer_join_direction(self):
        """Test a constant on the null side is not copied to the preserved side."""
        placed = _plan(
            "SELECT * FROM A LEFT JOIN B ON A.X = B.X WHERE B.X = 1",
            outer_join_on_clause=False,
        )
        assert _derived(placed) == []

    def test_full_join_not_duplicated(self):
        """Test no copies across a FULL JOIN."""
        placed = _plan("SELECT * FROM A FULL JOIN B ON A.X = B.X WHERE A.X = 1")
        assert _derived(placed) == []

    def test_transitive(self):
        """Test constants propagate along a chain of equalities."""
        placed = _plan(
            "SELECT * FROM A JOIN B ON A.X = B.X JOIN C ON B.X = C.Y WHERE A.X = 1"
        )
        assert sorted(p.sql() for p in _derived(placed)) == ["B.X = 1", "C.Y = 1"]

    def test_where_equality_propagates(self):
        """Test equalities written in WHERE also carry constants."""
        placed = _plan("SELECT * FROM A, B WHERE A.X = B.X AND A.X = 1")
        assert [p.sql() for p in _derived(placed)] == ["B.X = 1"]

    def test_identical_existing_predicate_suppresses_copy(self):
        """Test no copy when the target already carries the same values."""
        warnings = []
        placed = _plan(
            "SELECT * FROM A JOIN B ON A.X = B.X WHERE A.X = 1 AND B.X = 1",
            on_warning=warnings.append,
        )
        assert _derived(placed) == []
        assert warnings == []

    def test_conflicting_predicate_keeps_both_and_warns(self):
        """Test a conflicting existing predicate is kept with a warning."""
        warnings = []
        placed = _plan(
            "SELECT * FROM A JOIN B ON A.X = B.X WHERE A.X = 1 AND B.X IN (2, 3)",
            on_warning=warnings.append,
        )
        derived = [p.sql() for p in _derived(placed)]
        assert "B.X = 1" in derived
        assert "A.X IN (2, 3)" in derived
        assert any("conflicts with existing predicate" in w for w in warnings)
        assert any("both are kept" in w for w in warnings)

    def test_range_not_duplicated(self):
        """Test range predicates are not copied."""
        placed = _plan("SELECT * FROM A JOIN B ON A.X = B.X WHERE A.X > 1")
        assert _derived(placed) == []


class TestOverlayRouting:
    """Tests for routing predicates into overlay definitions."""

    SQL = (
        "SELECT * FROM CATENTRY CE JOIN DB2INST1.STORECENT SC "
        "ON CE.CATENTRY_ID = SC.CATENTRY_ID "
        "WHERE CE.CATENTRY_ID IN (1, 2) "
        "AND CE.MARKFORDELETE = 0 "
        "AND CE.LASTUPDATE > '2020-01-01' "
        "AND CE.PARTNUMBER LIKE 'AB%' "
        "AND CE.CONTENT_STATUS = 'P' "
        "AND SC.STORE_ID = 10101"
    )

    def _by_sql(self, placed):
        return {p.sql(): p for p in placed}

    def test_workspace_routes_simple_forms(self):
        """Test equality, IN-list and range predicates are copied into the overlay."""
        placed = self._by_sql(
            _plan(self.SQL, workspace=True, bookkeeping_columns=["CONTENT_STATUS"])
        )
        for sql in (
            "CE.CATENTRY_ID IN (1, 2)",
            "CE.MARKFORDELETE = 0",
            "CE.LASTUPDATE > '2020-01-01'",
        ):
            assert placed[sql].overlay_alias == "CE"
            assert placed[sql].destination == PushdownDestination.OVERLAY
            assert placed[sql].anchor == PushdownDestination.WHERE

    def test_pattern_never_routed(self):
        """Test LIKE predicates stay in the outer WHERE."""
        placed = self._by_sql(_plan(self.SQL, workspace=True))
        assert placed["CE.PARTNUMBER LIKE 'AB%'"].overlay_alias is None

    def test_bookkeeping_columns_never_routed(self):
        """Test predicates over bookkeeping columns stay in the outer WHERE."""
        placed = self._by_sql(
            _plan(self.SQL, workspace=True, bookkeeping_columns=["content_status"])
        )
        predicate = placed["CE.CONTENT_STATUS = 'P'"]
        assert predicate.overlay_alias is None
        assert predicate.destination == PushdownDestination.WHERE

    def test_schema_qualified_source_not_routed(self):
        """Test predicates on explicitly qualified tables are not routed."""
        placed = self._by_sql(_plan(self.SQL, workspace=True))
        assert placed["SC.STORE_ID = 10101"].overlay_alias is None

    def test_duplicates_are_routed(self):
        """Test a derived copy on an overlayable source is routed too."""
        placed = _plan(
            "SELECT * FROM CATENTRY CE JOIN CATENTDESC CD "
            "ON CE.CATENTRY_ID = CD.CATENTRY_ID WHERE CE.CATENTRY_ID = 1",
            workspace=True,
        )
        (duplicate,) = _derived(placed)
        assert duplicate.overlay_alias == "CD"

    def test_runtime_never_routes(self):
        """Test nothing is routed outside the workspace."""
        placed = _plan(self.SQL)
        assert all(p.overlay_alias is None for p in placed)
