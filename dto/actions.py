"""
Action DTOs: the closed set of mutation/query requests the agent may emit.

Actions arrive as JSON objects tagged by ``"type"``.  Field names on the
wire are camelCase (``allowOverwrite``, ``sheetName`` …) and map onto the
snake_case attributes below through an alias generator.

    {"type": "write", "range": "A1", "values": [["Zone", "Total"]]}
    {"type": "formula", "range": "C2", "formula": "=SUM(B2:B10)"}
    {"type": "countByCategory", "range": "A1", "categoryColumn": "T"}

``parse_action`` never raises: anything that does not validate against
the union becomes an ``UnknownAction`` so that the executor can report it.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from dto.region import Region

CellValue = Union[bool, int, float, str, None]


class _WireModel(BaseModel):
    """Base for every model that is read from / written to agent JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# -------------------------------------------------------------------
# Payload configurations
# -------------------------------------------------------------------

class BorderOptions(_WireModel):
    style: Literal["thin", "medium", "thick"] = "thin"
    color: str = "#000000"


class FormatOptions(_WireModel):
    bold: Optional[bool] = None
    italic: Optional[bool] = None
    font_size: Optional[float] = None
    font_color: Optional[str] = None
    background_color: Optional[str] = None
    horizontal_alignment: Optional[Literal["left", "center", "right"]] = None
    vertical_alignment: Optional[Literal["top", "center", "bottom"]] = None
    wrap_text: Optional[bool] = None
    borders: Union[bool, BorderOptions, None] = None
    merge: Optional[bool] = None
    number_format: Optional[str] = None


ChartType = Literal[
    "barClustered", "barStacked",
    "columnClustered", "columnStacked",
    "line", "lineMarkers",
    "pie", "doughnut",
    "area", "areaStacked",
]

AggregateFunction = Literal["count", "sum", "average", "max", "min"]


class PivotTableConfig(_WireModel):
    source_sheet: Optional[str] = None
    source_range: str
    row_field: str
    value_field: str
    value_function: AggregateFunction = "count"
    column_field: Optional[str] = None
    filter_field: Optional[str] = None


class FilterCriteria(_WireModel):
    column_index: int
    values: Optional[List[str]] = None
    criteria: Optional[str] = None


class SortColumn(_WireModel):
    column_index: int
    ascending: bool = True


class SortConfig(_WireModel):
    columns: List[SortColumn] = []
    has_headers: bool = True


class RuleFormat(_WireModel):
    background_color: Optional[str] = None
    font_color: Optional[str] = None
    bold: Optional[bool] = None


class ColorScalePoint(_WireModel):
    color: str
    type: Optional[str] = None
    value: Optional[float] = None


class ColorScaleConfig(_WireModel):
    minimum: Optional[ColorScalePoint] = None
    midpoint: Optional[ColorScalePoint] = None
    maximum: Optional[ColorScalePoint] = None


class DataBarConfig(_WireModel):
    bar_color: Optional[str] = None
    show_value: bool = True


ComparisonOperator = Literal[
    "greaterThan", "lessThan", "equalTo", "notEqualTo", "between",
    "notBetween", "greaterThanOrEqual", "lessThanOrEqual",
]


class CellValueRule(_WireModel):
    operator: ComparisonOperator = "greaterThan"
    value1: Union[float, str]
    value2: Union[float, str, None] = None
    format: RuleFormat = RuleFormat()


class TopBottomRule(_WireModel):
    type: Literal["top", "bottom"] = "top"
    count: int = 10
    percent: bool = False
    format: RuleFormat = RuleFormat()


class AboveAverageRule(_WireModel):
    above: bool = True
    format: RuleFormat = RuleFormat()


class DuplicatesRule(_WireModel):
    unique: bool = False
    format: RuleFormat = RuleFormat()


class CustomRule(_WireModel):
    formula: str
    format: RuleFormat = RuleFormat()


class ConditionalFormatConfig(_WireModel):
    type: Literal[
        "colorScale", "dataBar", "iconSet", "cellValue",
        "topBottom", "aboveAverage", "duplicates", "custom",
    ]
    color_scale: Optional[ColorScaleConfig] = None
    data_bar: Optional[DataBarConfig] = None
    icon_set: Optional[str] = None
    cell_value: Optional[CellValueRule] = None
    top_bottom: Optional[TopBottomRule] = None
    above_average: Optional[AboveAverageRule] = None
    duplicates: Optional[DuplicatesRule] = None
    custom: Optional[CustomRule] = None


class DataValidationConfig(_WireModel):
    type: Literal["list", "whole", "decimal", "date", "time", "textLength", "custom"]
    list: Union[List[str], str, None] = None
    operator: Optional[ComparisonOperator] = None
    value1: Union[float, str, None] = None
    value2: Union[float, str, None] = None
    formula: Optional[str] = None
    allow_blank: bool = True
    show_input_message: bool = False
    input_title: Optional[str] = None
    input_message: Optional[str] = None
    show_error_message: bool = False
    error_title: Optional[str] = None
    error_message: Optional[str] = None
    error_style: Literal["stop", "warning", "information"] = "stop"


class HyperlinkConfig(_WireModel):
    address: str
    text_to_display: Optional[str] = None
    screen_tip: Optional[str] = None


class NamedRangeConfig(_WireModel):
    name: str
    scope: Literal["workbook", "worksheet"] = "workbook"
    comment: Optional[str] = None


class ProtectionConfig(_WireModel):
    password: Optional[str] = None
    allow_format_cells: bool = False
    allow_format_columns: bool = False
    allow_format_rows: bool = False
    allow_insert_columns: bool = False
    allow_insert_rows: bool = False
    allow_insert_hyperlinks: bool = False
    allow_delete_columns: bool = False
    allow_delete_rows: bool = False
    allow_sort: bool = False
    allow_auto_filter: bool = False
    allow_pivot_tables: bool = False
    allow_edit_objects: bool = False
    allow_edit_scenarios: bool = False


class FreezeConfig(_WireModel):
    rows: Optional[int] = None
    columns: Optional[int] = None


class TextToColumnsConfig(_WireModel):
    delimiter: Literal["comma", "semicolon", "tab", "space", "custom"] = "comma"
    custom_delimiter: Optional[str] = None
    treat_consecutive_as_one: bool = False


# -------------------------------------------------------------------
# Action variants
# -------------------------------------------------------------------

class ActionBase(_WireModel):
    """Fields shared by every action kind."""

    range: str = "A1"
    description: Optional[str] = None
    sheet_name: Optional[str] = None
    allow_overwrite: bool = False

    def region(self, default_sheet: Optional[str] = None) -> Region:
        """The target region, qualified by *default_sheet* when unprefixed."""
        return Region.parse(self.range, sheet=default_sheet)

    def payload_shape(self) -> Optional[Tuple[int, int]]:
        """``(rows, cols)`` of the payload matrix, when the kind has one."""
        return None

    def label(self) -> str:
        return f'"{self.type}" on {self.range}'  # type: ignore[attr-defined]

    def to_wire(self) -> Dict[str, Any]:
        """Only the fields that were actually given, plus the kind tag."""
        data = self.model_dump(by_alias=True, exclude_unset=True)
        data["type"] = self.type  # type: ignore[attr-defined]
        return data


def _matrix_shape(matrix: Optional[List[List[Any]]]) -> Optional[Tuple[int, int]]:
    if not matrix:
        return None
    return len(matrix), max((len(row) for row in matrix), default=0) or 1


class WriteAction(ActionBase):
    type: Literal["write"] = "write"
    values: Optional[List[List[CellValue]]] = None
    value: CellValue = None

    def payload_shape(self) -> Optional[Tuple[int, int]]:
        return _matrix_shape(self.values)

    def expects_data(self) -> bool:
        if self.values:
            return any(v not in (None, "") for row in self.values for v in row)
        return self.value not in (None, "")


class FormulaAction(ActionBase):
    type: Literal["formula"] = "formula"
    formula: Optional[str] = None
    formulas: Optional[List[List[Optional[str]]]] = None

    def payload_shape(self) -> Optional[Tuple[int, int]]:
        return _matrix_shape(self.formulas)

    def expects_data(self) -> bool:
        if self.formulas:
            return any(f for row in self.formulas for f in row)
        return bool(self.formula)


class FormatAction(ActionBase):
    type: Literal["format"] = "format"
    format: Optional[FormatOptions] = None


class MergeAction(ActionBase):
    type: Literal["merge"] = "merge"


class TableAction(ActionBase):
    type: Literal["table"] = "table"
    table_name: Optional[str] = None
    has_headers: bool = True


class ColumnWidthAction(ActionBase):
    type: Literal["columnWidth"] = "columnWidth"
    width: Optional[float] = None


class RowHeightAction(ActionBase):
    type: Literal["rowHeight"] = "rowHeight"
    height: Optional[float] = None


class AutofitAction(ActionBase):
    type: Literal["autofit"] = "autofit"


class ChartAction(ActionBase):
    type: Literal["chart"] = "chart"
    chart_type: ChartType = "columnClustered"
    chart_title: Optional[str] = None
    anchor: Optional[str] = None


class CreateSheetAction(ActionBase):
    type: Literal["createSheet"] = "createSheet"


class ActivateSheetAction(ActionBase):
    type: Literal["activateSheet"] = "activateSheet"


class DeleteSheetAction(ActionBase):
    type: Literal["deleteSheet"] = "deleteSheet"


class PivotTableAction(ActionBase):
    type: Literal["pivotTable"] = "pivotTable"
    pivot_config: Optional[PivotTableConfig] = None


class ReadAction(ActionBase):
    type: Literal["read"] = "read"


class CalcAction(ActionBase):
    type: Literal["calc"] = "calc"
    calc_formulas: Optional[List[str]] = None
    # Some responses put the formulas under the generic key.
    formulas: Optional[List[str]] = None

    def formula_list(self) -> List[str]:
        return list(self.calc_formulas or self.formulas or [])


class CountByCategoryAction(ActionBase):
    type: Literal["countByCategory"] = "countByCategory"
    category_column: Optional[str] = None
    filter_column: Optional[str] = None
    filter_value: Optional[str] = None


class AvgByCategoryAction(ActionBase):
    type: Literal["avgByCategory"] = "avgByCategory"
    category_column: Optional[str] = None
    value_column: Optional[str] = None
    filter_column: Optional[str] = None
    filter_value: Optional[str] = None


class FilterAction(ActionBase):
    type: Literal["filter"] = "filter"
    filter_criteria: List[FilterCriteria] = []


class ClearFilterAction(ActionBase):
    type: Literal["clearFilter"] = "clearFilter"


class SearchAction(ActionBase):
    type: Literal["search"] = "search"
    search_value: Optional[str] = None
    search_column: Optional[str] = None


class SortAction(ActionBase):
    type: Literal["sort"] = "sort"
    sort_config: Optional[SortConfig] = None


class ConditionalFormatAction(ActionBase):
    type: Literal["conditionalFormat"] = "conditionalFormat"
    conditional_format_config: Optional[ConditionalFormatConfig] = None


class DataValidationAction(ActionBase):
    type: Literal["dataValidation"] = "dataValidation"
    data_validation_config: Optional[DataValidationConfig] = None


class CommentAction(ActionBase):
    type: Literal["comment"] = "comment"
    comment_text: Optional[str] = None


class HyperlinkAction(ActionBase):
    type: Literal["hyperlink"] = "hyperlink"
    hyperlink_config: Optional[HyperlinkConfig] = None


class NamedRangeAction(ActionBase):
    type: Literal["namedRange"] = "namedRange"
    named_range_config: Optional[NamedRangeConfig] = None


class ProtectAction(ActionBase):
    type: Literal["protect"] = "protect"
    protection_config: Optional[ProtectionConfig] = None


class UnprotectAction(ActionBase):
    type: Literal["unprotect"] = "unprotect"
    protection_config: Optional[ProtectionConfig] = None


class FreezePanesAction(ActionBase):
    type: Literal["freezePanes"] = "freezePanes"
    freeze_config: Optional[FreezeConfig] = None


class UnfreezePaneAction(ActionBase):
    type: Literal["unfreezePane"] = "unfreezePane"


class GroupRowsAction(ActionBase):
    type: Literal["groupRows"] = "groupRows"
    group_outline: bool = True


class GroupColumnsAction(ActionBase):
    type: Literal["groupColumns"] = "groupColumns"
    group_outline: bool = True


class UngroupRowsAction(ActionBase):
    type: Literal["ungroupRows"] = "ungroupRows"


class UngroupColumnsAction(ActionBase):
    type: Literal["ungroupColumns"] = "ungroupColumns"


class HideRowsAction(ActionBase):
    type: Literal["hideRows"] = "hideRows"


class HideColumnsAction(ActionBase):
    type: Literal["hideColumns"] = "hideColumns"


class ShowRowsAction(ActionBase):
    type: Literal["showRows"] = "showRows"


class ShowColumnsAction(ActionBase):
    type: Literal["showColumns"] = "showColumns"


class RemoveDuplicatesAction(ActionBase):
    type: Literal["removeDuplicates"] = "removeDuplicates"
    remove_duplicates_columns: List[int] = []


class TextToColumnsAction(ActionBase):
    type: Literal["textToColumns"] = "textToColumns"
    text_to_columns_config: Optional[TextToColumnsConfig] = None


class UnknownAction(ActionBase):
    """
    Anything the agent emitted that is not a valid member of ``Action``.

    Kept (rather than dropped) so the executor reports it explicitly.
    """

    type: str = "unknown"
    reason: str = ""
    raw: Dict[str, Any] = {}

    def to_wire(self) -> Dict[str, Any]:
        return dict(self.raw) if self.raw else {"type": self.type}


# -------------------------------------------------------------------
# Discriminated union
# -------------------------------------------------------------------

ACTION_CLASSES = (
    WriteAction, FormulaAction, FormatAction, MergeAction, TableAction,
    ColumnWidthAction, RowHeightAction, AutofitAction, ChartAction,
    CreateSheetAction, ActivateSheetAction, DeleteSheetAction,
    PivotTableAction, ReadAction, CalcAction, CountByCategoryAction,
    AvgByCategoryAction, FilterAction, ClearFilterAction, SearchAction,
    SortAction, ConditionalFormatAction, DataValidationAction,
    CommentAction, HyperlinkAction, NamedRangeAction, ProtectAction,
    UnprotectAction, FreezePanesAction, UnfreezePaneAction,
    GroupRowsAction, GroupColumnsAction, UngroupRowsAction,
    UngroupColumnsAction, HideRowsAction, HideColumnsAction,
    ShowRowsAction, ShowColumnsAction, RemoveDuplicatesAction,
    TextToColumnsAction,
)

Action = Annotated[Union[ACTION_CLASSES], Field(discriminator="type")]

AnyAction = Union[Action, UnknownAction]

_ACTION_ADAPTER: TypeAdapter = TypeAdapter(Action)

ACTION_KINDS = frozenset(cls.model_fields["type"].default for cls in ACTION_CLASSES)

# Kinds that put data into cells and therefore go through the collision
# guard and post-write validation.
WRITE_KINDS = frozenset({"write", "formula"})

# Kinds that gather data for the agent instead of changing the sheet.
QUERY_KINDS = frozenset({"read", "calc", "countByCategory", "avgByCategory"})


def parse_action(raw: Any) -> AnyAction:
    """Validate one raw action dict; invalid input becomes ``UnknownAction``."""
    if isinstance(raw, BaseModel):
        return raw  # type: ignore[return-value]
    if not isinstance(raw, dict):
        return UnknownAction(reason=f"Action is not an object: {raw!r}"[:200])

    kind = raw.get("type")
    if kind not in ACTION_KINDS:
        return UnknownAction(
            type=str(kind or "unknown"),
            range=str(raw.get("range") or "A1"),
            reason=f"Unknown action type: {kind!r}",
            raw=raw,
        )
    try:
        return _ACTION_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        return UnknownAction(
            type=str(kind),
            range=str(raw.get("range") or "A1"),
            reason=f"Invalid {kind} action: {exc.errors()[0].get('msg', exc)}",
            raw=raw,
        )


def parse_actions(raw_actions: Optional[List[Any]]) -> Optional[List[AnyAction]]:
    if raw_actions is None:
        return None
    return [parse_action(item) for item in raw_actions]
