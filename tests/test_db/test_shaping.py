"""Unit tests for result shaping in db_manager.db.shaping."""

from types import SimpleNamespace

import pytest

from db_manager.db.errors import ShapeContractError
from db_manager.db.shaping import ResultShaper, materialize_row
from db_manager.db.types import ColumnMeta, ReturnShape


class FakeHandle:
    """In-memory statement handle that records whether it was closed."""

    def __init__(self, names, rows):
        self._names = list(names)
        self._rows = list(rows)
        self.closed = False

    def fetch_one(self):
        return self._rows.pop(0) if self._rows else None

    def fetch_all(self):
        rows, self._rows = self._rows, []
        return rows

    def column_count(self):
        return len(self._names)

    def column_meta(self, index):
        return ColumnMeta(name=self._names[index])

    def close(self):
        self.closed = True


ROWS = [(1, "A", 15.0), (2, "B", 46.74), (3, "C", 13.42)]


def _handle(rows=ROWS, names=("id", "label", "price")):
    return FakeHandle(names, rows)


@pytest.mark.unit
@pytest.mark.parametrize(
    "shape, expected",
    [
        (ReturnShape.NUM, (1, "A")),
        (ReturnShape.ASSOC, {"id": 1, "label": "A"}),
        (ReturnShape.OBJECT, SimpleNamespace(id=1, label="A")),
    ],
)
def test_materialize_row(shape, expected):
    assert materialize_row(["id", "label"], (1, "A"), shape) == expected


@pytest.mark.unit
def test_assoc_row_keeps_last_duplicate_column_name():
    assert materialize_row(["v", "v"], (1, 2), ReturnShape.ASSOC) == {"v": 2}


@pytest.mark.unit
def test_all_rows_uses_default_shape_and_closes_handle():
    handle = _handle()

    rows = ResultShaper().all_rows(handle)

    assert rows[0] == SimpleNamespace(id=1, label="A", price=15.0)
    assert len(rows) == 3
    assert handle.closed


@pytest.mark.unit
def test_first_row_returns_none_when_empty():
    handle = _handle(rows=[])

    assert ResultShaper().first_row(handle, ReturnShape.ASSOC) is None
    assert handle.closed


@pytest.mark.unit
def test_column_and_scalar():
    shaper = ResultShaper()

    assert shaper.column(_handle()) == [1, 2, 3]
    assert shaper.scalar(_handle()) == 1
    assert shaper.scalar(_handle(rows=[]), default=0) == 0


@pytest.mark.unit
def test_pairs_uses_first_two_columns():
    assert ResultShaper().pairs(_handle()) == {1: "A", 2: "B", 3: "C"}


@pytest.mark.unit
def test_pairs_on_single_column_raises_and_closes():
    handle = _handle(rows=[(1,)], names=("id",))

    with pytest.raises(ShapeContractError, match="shape.pairs"):
        ResultShaper().pairs(handle)
    assert handle.closed


@pytest.mark.unit
def test_pairs_on_empty_single_column_still_raises():
    with pytest.raises(ShapeContractError):
        ResultShaper().pairs(_handle(rows=[], names=("id",)))


@pytest.mark.unit
def test_indexed_by_non_first_column():
    indexed = ResultShaper().indexed(_handle(), "label", ReturnShape.NUM)

    assert indexed == {"A": (1, "A", 15.0), "B": (2, "B", 46.74), "C": (3, "C", 13.42)}


@pytest.mark.unit
def test_indexed_missing_key_field_raises_and_closes():
    handle = _handle()

    with pytest.raises(ShapeContractError, match="shape.indexed"):
        ResultShaper().indexed(handle, "sku")
    assert handle.closed


@pytest.mark.unit
def test_resolve_shape():
    shaper = ResultShaper(ReturnShape.ASSOC)

    assert shaper.resolve_shape() is ReturnShape.ASSOC
    assert shaper.resolve_shape("NUM") is ReturnShape.NUM
    assert shaper.resolve_shape(ReturnShape.OBJECT) is ReturnShape.OBJECT
    assert shaper.resolve_shape(3) is ReturnShape.ASSOC
    assert shaper.resolve_shape("both") is ReturnShape.ASSOC


@pytest.mark.unit
def test_set_default_shape(caplog):
    shaper = ResultShaper()

    assert shaper.set_default_shape("num") is True
    assert shaper.default_shape is ReturnShape.NUM
    with caplog.at_level("WARNING"):
        assert shaper.set_default_shape(None) is False
    assert shaper.default_shape is ReturnShape.NUM
    assert "Refusing invalid default return shape" in caplog.text
