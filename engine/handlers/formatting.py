"""
Cosmetic actions: cell styles, merges, sizes, conditional formats, data
validation, comments, hyperlinks, protection, freeze panes and row/column
outline (grouping and visibility).

Each kind is a direct mapping onto the openpyxl object model and never
changes cell values, except ``hyperlink`` when display text is given.
"""

from __future__ import annotations

import logging
from copy import copy
from typing import Any, Dict, Optional

from openpyxl.comments import Comment
from openpyxl.formatting.rule import (
    CellIsRule,
    ColorScaleRule,
    DataBarRule,
    FormulaRule,
    IconSetRule,
    Rule,
)
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.styles.differential import DifferentialStyle
from openpyxl.utils.protection import hash_password
from openpyxl.worksheet.datavalidation import DataValidation
from openpyxl.worksheet.hyperlink import Hyperlink

from document.workbook import is_empty
from dto.actions import (
    ActionBase,
    ColumnWidthAction,
    CommentAction,
    ConditionalFormatAction,
    ConditionalFormatConfig,
    DataValidationAction,
    DataValidationConfig,
    FormatAction,
    FreezePanesAction,
    HyperlinkAction,
    ProtectAction,
    RowHeightAction,
    RuleFormat,
    UnprotectAction,
)
from dto.results import ActionResult
from engine.handlers.base import BaseHandler, HandlerMethod, fail, ok
from utils.addressing import coord

logger = logging.getLogger(__name__)

COMMENT_AUTHOR = "sheetpilot"
MAX_AUTOFIT_WIDTH = 60

# Office-style operator names → openpyxl's.
_OPERATORS = {
    "greaterThan": "greaterThan",
    "lessThan": "lessThan",
    "equalTo": "equal",
    "notEqualTo": "notEqual",
    "between": "between",
    "notBetween": "notBetween",
    "greaterThanOrEqual": "greaterThanOrEqual",
    "lessThanOrEqual": "lessThanOrEqual",
}

_SCALE_TYPES = {
    "lowestValue": "min",
    "highestValue": "max",
    "number": "num",
    "percent": "percent",
    "percentile": "percentile",
    "formula": "formula",
}

_ICON_COUNT_WORDS = {"three": "3", "four": "4", "five": "5"}
_ICON_STYLES = {
    "3Arrows", "3ArrowsGray", "3Flags", "3TrafficLights1", "3TrafficLights2",
    "3Signs", "3Symbols", "3Symbols2", "4Arrows", "4ArrowsGray", "4RedToBlack",
    "4Rating", "4TrafficLights", "5Arrows", "5ArrowsGray", "5Rating", "5Quarters",
}


def argb(color: Optional[str]) -> Optional[str]:
    """``"#1f4e79"`` → ``"FF1F4E79"``; openpyxl wants alpha-prefixed hex."""
    if not color:
        return None
    hex_part = color.strip().lstrip("#").upper()
    if len(hex_part) == 3:
        hex_part = "".join(ch * 2 for ch in hex_part)
    return hex_part if len(hex_part) == 8 else "FF" + hex_part


def _formula_operand(value: Any) -> str:
    """A rule/validation operand as formula text."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    text = str(value).strip()
    if text.startswith("="):
        return text[1:]
    try:
        float(text)
        return text
    except ValueError:
        return '"' + text.replace('"', '""') + '"'


def _icon_style(name: Optional[str]) -> str:
    if not name:
        return "3TrafficLights1"
    for word, digit in _ICON_COUNT_WORDS.items():
        if name.lower().startswith(word):
            rest = name[len(word):]
            name = digit + rest[:1].upper() + rest[1:]
            break
    return name if name in _ICON_STYLES else "3TrafficLights1"


def _differential(fmt: RuleFormat) -> DifferentialStyle:
    fill = None
    if fmt.background_color:
        color = argb(fmt.background_color)
        fill = PatternFill(start_color=color, end_color=color, fill_type="solid")
    font = None
    if fmt.font_color or fmt.bold:
        font = Font(color=argb(fmt.font_color), bold=fmt.bold)
    return DifferentialStyle(fill=fill, font=font)


class FormattingHandler(BaseHandler):
    def kinds(self) -> Dict[str, HandlerMethod]:
        return {
            "format": self.format,
            "merge": self.merge,
            "columnWidth": self.column_width,
            "rowHeight": self.row_height,
            "autofit": self.autofit,
            "conditionalFormat": self.conditional_format,
            "dataValidation": self.data_validation,
            "comment": self.comment,
            "hyperlink": self.hyperlink,
            "protect": self.protect,
            "unprotect": self.unprotect,
            "freezePanes": self.freeze_panes,
            "unfreezePane": self.unfreeze_pane,
            "groupRows": self.group_rows,
            "groupColumns": self.group_columns,
            "ungroupRows": self.ungroup_rows,
            "ungroupColumns": self.ungroup_columns,
            "hideRows": self.hide_rows,
            "hideColumns": self.hide_columns,
            "showRows": self.show_rows,
            "showColumns": self.show_columns,
        }

    # -- cell styles ---------------------------------------------------

    def format(self, action: FormatAction) -> ActionResult:
        fmt = action.format
        if fmt is None:
            return fail(action, "format options are required")
        region = self.ctx.region_of(action)
        ws = self.document.sheet(region.sheet)

        border = None
        if fmt.borders:
            style = "thin" if fmt.borders is True else fmt.borders.style
            color = argb("#000000" if fmt.borders is True else fmt.borders.color)
            side = Side(style=style, color=color)
            border = Border(left=side, right=side, top=side, bottom=side)
        fill = None
        if fmt.background_color:
            color = argb(fmt.background_color)
            fill = PatternFill(start_color=color, end_color=color, fill_type="solid")

        for r, c in region.cells():
            cell = ws.cell(row=r, column=c)
            if any(v is not None for v in (fmt.bold, fmt.italic, fmt.font_size, fmt.font_color)):
                font = copy(cell.font)
                if fmt.bold is not None:
                    font.bold = fmt.bold
                if fmt.italic is not None:
                    font.italic = fmt.italic
                if fmt.font_size is not None:
                    font.size = fmt.font_size
                if fmt.font_color:
                    font.color = argb(fmt.font_color)
                cell.font = font
            if fill is not None:
                cell.fill = fill
            if any(v is not None for v in (fmt.horizontal_alignment, fmt.vertical_alignment, fmt.wrap_text)):
                alignment = copy(cell.alignment)
                if fmt.horizontal_alignment:
                    alignment.horizontal = fmt.horizontal_alignment
                if fmt.vertical_alignment:
                    alignment.vertical = fmt.vertical_alignment
                if fmt.wrap_text is not None:
                    alignment.wrap_text = fmt.wrap_text
                cell.alignment = alignment
            if border is not None:
                cell.border = border
            if fmt.number_format:
                cell.number_format = fmt.number_format

        if fmt.merge and not region.is_single_cell:
            ws.merge_cells(region.ref)
        return ok(action, f"Formatted {region.ref}")

    def merge(self, action: ActionBase) -> ActionResult:
        region = self.ctx.region_of(action)
        if region.is_single_cell:
            return ok(action, f"{region.ref} is a single cell; nothing to merge")
        self.document.sheet(region.sheet).merge_cells(region.ref)
        return ok(action, f"Merged {region.ref}")

    # -- sizes -------------------------------------------------------------

    def column_width(self, action: ColumnWidthAction) -> ActionResult:
        if not action.width:
            return fail(action, "width is required")
        region = self.ctx.region_of(action)
        ws = self.document.sheet(region.sheet)
        for letter in region.column_letters():
            ws.column_dimensions[letter].width = action.width
        return ok(action, f"Set width {action.width} on columns {region.column_letters()[0]}:{region.column_letters()[-1]}")

    def row_height(self, action: RowHeightAction) -> ActionResult:
        if not action.height:
            return fail(action, "height is required")
        region = self.ctx.region_of(action)
        ws = self.document.sheet(region.sheet)
        for r in range(region.min_row, region.max_row + 1):
            ws.row_dimensions[r].height = action.height
        return ok(action, f"Set height {action.height} on rows {region.min_row}:{region.max_row}")

    def autofit(self, action: ActionBase) -> ActionResult:
        """Approximate: width follows the longest rendered value per column."""
        region = self.ctx.region_of(action)
        ws = self.document.sheet(region.sheet)
        values = self.document.read_values(region)
        for j, letter in enumerate(region.column_letters()):
            longest = max((len(str(row[j])) for row in values if not is_empty(row[j])), default=0)
            if longest:
                ws.column_dimensions[letter].width = min(longest + 2, MAX_AUTOFIT_WIDTH)
        return ok(action, f"Autofit columns of {region.ref}")

    # -- rules ---------------------------------------------------------------

    def conditional_format(self, action: ConditionalFormatAction) -> ActionResult:
        cfg = action.conditional_format_config
        if cfg is None:
            return fail(action, "conditionalFormatConfig is required")
        region = self.ctx.region_of(action)
        rule = self._build_rule(cfg)
        if rule is None:
            return fail(action, f"Missing settings for {cfg.type} conditional format")
        self.document.sheet(region.sheet).conditional_formatting.add(region.ref, rule)
        return ok(action, f"Added {cfg.type} conditional format to {region.ref}")

    @staticmethod
    def _build_rule(cfg: ConditionalFormatConfig) -> Optional[Rule]:
        if cfg.type == "colorScale":
            scale = cfg.color_scale
            low = scale.minimum if scale and scale.minimum else None
            high = scale.maximum if scale and scale.maximum else None
            mid = scale.midpoint if scale else None
            kwargs: Dict[str, Any] = {
                "start_type": _SCALE_TYPES.get(low.type, "min") if low and low.type else "min",
                "start_value": low.value if low else None,
                "start_color": argb(low.color) if low else "FFF8696B",
                "end_type": _SCALE_TYPES.get(high.type, "max") if high and high.type else "max",
                "end_value": high.value if high else None,
                "end_color": argb(high.color) if high else "FF63BE7B",
            }
            if mid is not None:
                kwargs.update(
                    mid_type=_SCALE_TYPES.get(mid.type, "percentile") if mid.type else "percentile",
                    mid_value=mid.value if mid.value is not None else 50,
                    mid_color=argb(mid.color),
                )
            return ColorScaleRule(**kwargs)
        if cfg.type == "dataBar":
            bar = cfg.data_bar
            return DataBarRule(
                start_type="min",
                end_type="max",
                color=argb(bar.bar_color) if bar and bar.bar_color else "FF638EC6",
                showValue=bar.show_value if bar else True,
            )
        if cfg.type == "iconSet":
            return IconSetRule(_icon_style(cfg.icon_set), "percent", [0, 33, 67])
        if cfg.type == "cellValue" and cfg.cell_value:
            cv = cfg.cell_value
            formula = [_formula_operand(cv.value1)]
            if cv.value2 is not None:
                formula.append(_formula_operand(cv.value2))
            style = _differential(cv.format)
            return CellIsRule(operator=_OPERATORS[cv.operator], formula=formula, fill=style.fill, font=style.font)
        if cfg.type == "topBottom" and cfg.top_bottom:
            tb = cfg.top_bottom
            return Rule(
                type="top10", rank=tb.count, percent=tb.percent,
                bottom=tb.type == "bottom", dxf=_differential(tb.format),
            )
        if cfg.type == "aboveAverage" and cfg.above_average:
            aa = cfg.above_average
            return Rule(type="aboveAverage", aboveAverage=aa.above, dxf=_differential(aa.format))
        if cfg.type == "duplicates" and cfg.duplicates:
            dup = cfg.duplicates
            kind = "uniqueValues" if dup.unique else "duplicateValues"
            return Rule(type=kind, dxf=_differential(dup.format))
        if cfg.type == "custom" and cfg.custom:
            style = _differential(cfg.custom.format)
            formula = cfg.custom.formula.strip().lstrip("=")
            return FormulaRule(formula=[formula], fill=style.fill, font=style.font)
        return None

    def data_validation(self, action: DataValidationAction) -> ActionResult:
        cfg = action.data_validation_config
        if cfg is None:
            return fail(action, "dataValidationConfig is required")
        region = self.ctx.region_of(action)
        dv = self._build_validation(cfg)
        dv.add(region.ref)
        self.document.sheet(region.sheet).add_data_validation(dv)
        return ok(action, f"Added {cfg.type} validation to {region.ref}")

    @staticmethod
    def _build_validation(cfg: DataValidationConfig) -> DataValidation:
        formula1 = formula2 = None
        operator = None
        if cfg.type == "list":
            if isinstance(cfg.list, list):
                formula1 = '"' + ",".join(str(v) for v in cfg.list) + '"'
            elif cfg.list and cfg.list.startswith("="):
                formula1 = cfg.list[1:]
            elif cfg.list:
                formula1 = '"' + cfg.list + '"'
        elif cfg.type == "custom":
            formula1 = (cfg.formula or "").lstrip("=")
        else:
            operator = _OPERATORS[cfg.operator or "between"]
            if cfg.value1 is not None:
                formula1 = _formula_operand(cfg.value1)
            if cfg.value2 is not None:
                formula2 = _formula_operand(cfg.value2)

        return DataValidation(
            type=cfg.type,
            operator=operator,
            formula1=formula1,
            formula2=formula2,
            allow_blank=cfg.allow_blank,
            showInputMessage=cfg.show_input_message,
            promptTitle=cfg.input_title,
            prompt=cfg.input_message,
            showErrorMessage=cfg.show_error_message,
            errorTitle=cfg.error_title,
            error=cfg.error_message,
            errorStyle=cfg.error_style,
        )

    # -- annotations -------------------------------------------------------

    def comment(self, action: CommentAction) -> ActionResult:
        if not action.comment_text:
            return fail(action, "commentText is required")
        region = self.ctx.region_of(action)
        cell = self.document.sheet(region.sheet)[region.top_left]
        cell.comment = Comment(action.comment_text, COMMENT_AUTHOR)
        return ok(action, f"Added comment to {region.top_left}")

    def hyperlink(self, action: HyperlinkAction) -> ActionResult:
        cfg = action.hyperlink_config
        if cfg is None or not cfg.address:
            return fail(action, "hyperlinkConfig with an address is required")
        region = self.ctx.region_of(action)
        ws = self.document.sheet(region.sheet)
        cell = ws[region.top_left]

        target = cfg.address.strip()
        if "://" in target or target.lower().startswith("mailto:"):
            cell.hyperlink = target
        else:
            cell.hyperlink = Hyperlink(ref=region.top_left, location=target.lstrip("#"))
        if cfg.screen_tip:
            cell.hyperlink.tooltip = cfg.screen_tip
        if cfg.text_to_display:
            cell.value = cfg.text_to_display
            self.document.touch()
        elif is_empty(cell.value):
            cell.value = target
            self.document.touch()
        cell.style = "Hyperlink"
        return ok(action, f"Linked {region.top_left} to {target}")

    # -- protection --------------------------------------------------------

    def protect(self, action: ProtectAction) -> ActionResult:
        ws = self.ctx.worksheet_of(action)
        cfg = action.protection_config
        prot = ws.protection
        if cfg is not None:
            # openpyxl flags mark what is *locked*, the inverse of "allow".
            prot.formatCells = not cfg.allow_format_cells
            prot.formatColumns = not cfg.allow_format_columns
            prot.formatRows = not cfg.allow_format_rows
            prot.insertColumns = not cfg.allow_insert_columns
            prot.insertRows = not cfg.allow_insert_rows
            prot.insertHyperlinks = not cfg.allow_insert_hyperlinks
            prot.deleteColumns = not cfg.allow_delete_columns
            prot.deleteRows = not cfg.allow_delete_rows
            prot.sort = not cfg.allow_sort
            prot.autoFilter = not cfg.allow_auto_filter
            prot.pivotTables = not cfg.allow_pivot_tables
            prot.objects = not cfg.allow_edit_objects
            prot.scenarios = not cfg.allow_edit_scenarios
            if cfg.password:
                prot.password = cfg.password
        prot.sheet = True
        return ok(action, f'Protected sheet "{ws.title}"')

    def unprotect(self, action: UnprotectAction) -> ActionResult:
        ws = self.ctx.worksheet_of(action)
        prot = ws.protection
        stored = prot.password
        if stored:
            given = action.protection_config.password if action.protection_config else None
            if not given or hash_password(given) != stored:
                return fail(action, f'Sheet "{ws.title}" is protected with a password; the password given does not match')
        prot.sheet = False
        prot.password = None
        return ok(action, f'Unprotected sheet "{ws.title}"')

    # -- panes & outline -------------------------------------------------

    def freeze_panes(self, action: FreezePanesAction) -> ActionResult:
        ws = self.ctx.worksheet_of(action)
        cfg = action.freeze_config
        if cfg is not None and (cfg.rows or cfg.columns):
            ws.freeze_panes = coord((cfg.columns or 0) + 1, (cfg.rows or 0) + 1)
        else:
            ws.freeze_panes = self.ctx.region_of(action).top_left
        return ok(action, f"Froze panes at {ws.freeze_panes}")

    def unfreeze_pane(self, action: ActionBase) -> ActionResult:
        ws = self.ctx.worksheet_of(action)
        ws.freeze_panes = None
        return ok(action, f'Unfroze panes on "{ws.title}"')

    def group_rows(self, action: ActionBase) -> ActionResult:
        region = self.ctx.region_of(action)
        ws = self.document.sheet(region.sheet)
        ws.row_dimensions.group(region.min_row, region.max_row, outline_level=1, hidden=False)
        return ok(action, f"Grouped rows {region.min_row}:{region.max_row}")

    def group_columns(self, action: ActionBase) -> ActionResult:
        region = self.ctx.region_of(action)
        ws = self.document.sheet(region.sheet)
        letters = region.column_letters()
        ws.column_dimensions.group(letters[0], letters[-1], outline_level=1, hidden=False)
        return ok(action, f"Grouped columns {letters[0]}:{letters[-1]}")

    def ungroup_rows(self, action: ActionBase) -> ActionResult:
        region = self.ctx.region_of(action)
        ws = self.document.sheet(region.sheet)
        for r in range(region.min_row, region.max_row + 1):
            ws.row_dimensions[r].outline_level = 0
        return ok(action, f"Ungrouped rows {region.min_row}:{region.max_row}")

    def ungroup_columns(self, action: ActionBase) -> ActionResult:
        region = self.ctx.region_of(action)
        ws = self.document.sheet(region.sheet)
        for letter in region.column_letters():
            ws.column_dimensions[letter].outline_level = 0
        return ok(action, f"Ungrouped columns {region.column_letters()[0]}:{region.column_letters()[-1]}")

    def _set_rows_hidden(self, action: ActionBase, hidden: bool) -> ActionResult:
        region = self.ctx.region_of(action)
        ws = self.document.sheet(region.sheet)
        for r in range(region.min_row, region.max_row + 1):
            ws.row_dimensions[r].hidden = hidden
        verb = "Hid" if hidden else "Showed"
        return ok(action, f"{verb} rows {region.min_row}:{region.max_row}")

    def _set_columns_hidden(self, action: ActionBase, hidden: bool) -> ActionResult:
        region = self.ctx.region_of(action)
        ws = self.document.sheet(region.sheet)
        letters = region.column_letters()
        for letter in letters:
            ws.column_dimensions[letter].hidden = hidden
        verb = "Hid" if hidden else "Showed"
        return ok(action, f"{verb} columns {letters[0]}:{letters[-1]}")

    def hide_rows(self, action: ActionBase) -> ActionResult:
        return self._set_rows_hidden(action, True)

    def show_rows(self, action: ActionBase) -> ActionResult:
        return self._set_rows_hidden(action, False)

    def hide_columns(self, action: ActionBase) -> ActionResult:
        return self._set_columns_hidden(action, True)

    def show_columns(self, action: ActionBase) -> ActionResult:
        return self._set_columns_hidden(action, False)
