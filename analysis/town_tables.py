#!/usr/bin/env python3
"""
Interactive town tables

Builds DataTables grids (search, per-column filters, sorting, paging and
Copy/Excel/PDF buttons) as branca figures that processing.html_export can
save. Number formatting runs client side so sorting still uses raw values.
"""

import json
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd
from branca.element import CssLink, Figure, JavascriptLink, MacroElement
from jinja2 import Template
from loguru import logger

from ops import Config
from processing.html_export import HtmlWidget

DATATABLES_CSS = [
    "https://cdn.datatables.net/1.13.8/css/jquery.dataTables.min.css",
    "https://cdn.datatables.net/buttons/2.4.2/css/buttons.dataTables.min.css",
]
DATATABLES_JS = [
    "https://code.jquery.com/jquery-3.7.1.min.js",
    "https://cdn.datatables.net/1.13.8/js/jquery.dataTables.min.js",
    "https://cdn.datatables.net/buttons/2.4.2/js/dataTables.buttons.min.js",
    "https://cdnjs.cloudflare.com/ajax/libs/jszip/3.10.1/jszip.min.js",
    "https://cdnjs.cloudflare.com/ajax/libs/pdfmake/0.2.7/pdfmake.min.js",
    "https://cdnjs.cloudflare.com/ajax/libs/pdfmake/0.2.7/vfs_fonts.js",
    "https://cdn.datatables.net/buttons/2.4.2/js/buttons.html5.min.js",
]

# Search box on top, buttons and paging below
DOM_WITH_SEARCH = '<"top"f>rt<"bottom"Bp>'
DOM_PLAIN = 'rt<"bottom"Bp>'

CAPTION_STYLE = "font-size: 12px; font-style: italic; text-align: left;"

CAPTION_CSS = """
<style>
  .dataTables_wrapper .dataTables_caption,
  table.dataTable caption {
    font-size: 18px;
    font-weight: bold;
    padding: 10px 0;
    text-align: center;
  }
</style>
"""


class DataTable(MacroElement):
    """DataTables grid bound to inline JSON rows."""

    _template = Template(
        """
        {% macro html(this, kwargs) %}
        <table id="{{ this.get_name() }}" class="display compact" style="width:100%">
          {%- if this.caption %}
          <caption style="{{ this.caption_style }}">{{ this.caption }}</caption>
          {%- endif %}
          <thead>
            <tr>{% for col in this.columns %}<th>{{ col }}</th>{% endfor %}</tr>
            {%- if this.column_filters %}
            <tr class="column-filters">{% for col in this.columns %}<th><input type="search" placeholder="All" style="width:100%"/></th>{% endfor %}</tr>
            {%- endif %}
          </thead>
        </table>
        {% endmacro %}

        {% macro script(this, kwargs) %}
        $(document).ready(function () {
            var rowColors = {{ this.row_colors_json }};
            var categoryIndex = {{ this.category_index }};
            var table = $("#{{ this.get_name() }}").DataTable({
                data: {{ this.data_json }},
                dom: {{ this.dom_json }},
                buttons: {{ this.buttons_json }},
                pageLength: {{ this.page_length }},
                ordering: {{ this.ordering_js }},
                order: {{ this.order_json }},
                orderCellsTop: true,
                autoWidth: false,
                columnDefs: [
                    {% for col in this.column_defs %}
                    {
                        targets: {{ col.target }},
                        {%- if col.width %}
                        width: {{ col.width | tojson }},
                        {%- endif %}
                        {%- if col.digits is not none %}
                        className: "dt-right",
                        render: $.fn.dataTable.render.number(",", ".", {{ col.digits }}),
                        {%- endif %}
                    },
                    {% endfor %}
                    {targets: "_all", defaultContent: ""}
                ],
                rowCallback: function (row, data) {
                    if (categoryIndex >= 0 && rowColors[data[categoryIndex]]) {
                        $(row).css("background-color", rowColors[data[categoryIndex]]);
                    }
                }
            });
            {%- if this.column_filters %}
            table.columns().every(function () {
                var column = this;
                $("input", $("#{{ this.get_name() }} thead tr.column-filters th").eq(column.index()))
                    .on("keyup change clear", function () {
                        if (column.search() !== this.value) {
                            column.search(this.value).draw();
                        }
                    });
            });
            {%- endif %}
        });
        {% endmacro %}
        """
    )

    def __init__(
        self,
        df: pd.DataFrame,
        caption: str = "",
        title: str = "",
        filename: str = "table",
        number_formats: Optional[Dict[str, int]] = None,
        row_colors: Optional[Dict[str, str]] = None,
        category_column: str = "Category",
        page_length: int = 20,
        ordering: bool = True,
        order: Optional[List[Tuple[int, str]]] = None,
        column_filters: bool = False,
        search_box: bool = False,
        first_column_width: Optional[str] = None,
    ):
        super().__init__()
        self._name = "DataTable"
        number_formats = number_formats or {}

        self.columns = [str(col) for col in df.columns]
        self.caption = caption
        self.caption_style = CAPTION_STYLE
        self.column_filters = column_filters
        self.page_length = int(page_length)
        self.ordering_js = "true" if ordering else "false"

        # NaN -> null so missing cells render empty
        self.data_json = df.to_json(orient="values")
        self.dom_json = json.dumps(DOM_WITH_SEARCH if search_box else DOM_PLAIN)
        self.order_json = json.dumps([list(o) for o in order] if order else [])

        export_options = {"filename": filename, "title": title}
        self.buttons_json = json.dumps(
            [
                {"extend": "copy", "text": "Copy"},
                {"extend": "excel", "text": "Excel", **export_options},
                {"extend": "pdf", "text": "PDF", **export_options},
            ]
        )

        self.row_colors_json = json.dumps(row_colors or {})
        self.category_index = (
            self.columns.index(category_column)
            if row_colors and category_column in self.columns
            else -1
        )

        self.column_defs = []
        for i, col in enumerate(self.columns):
            digits = number_formats.get(col)
            width = first_column_width if i == 0 else None
            if digits is not None or width:
                self.column_defs.append({"target": i, "digits": digits, "width": width})


def default_number_formats(df: pd.DataFrame, config: Config) -> Dict[str, int]:
    """Decimal places per display column: counts get 0, rates get 1."""
    digits_by_key = {
        "population": 0,
        "annual_change": 0,
        "cumulative_change": 0,
        "annual_pct_change": 1,
        "cumulative_pct_change": 1,
        "density": 1,
    }
    formats = {}
    for key, digits in digits_by_key.items():
        label = config.get_label(key)
        if label in df.columns:
            formats[label] = digits
    return formats


def build_town_table(
    df: pd.DataFrame,
    title: str,
    filename: str,
    caption: str = "",
    number_formats: Optional[Dict[str, int]] = None,
    row_colors: Optional[Dict[str, str]] = None,
    page_length: int = 20,
    ordering: bool = True,
    order: Optional[List[Tuple[int, str]]] = None,
    column_filters: bool = False,
    search_box: bool = False,
    first_column_width: Optional[str] = None,
) -> HtmlWidget:
    """
    Build an interactive table widget for a cleaned town DataFrame.

    Args:
        df: Rows to show, already in display order
        title: Title used by the Excel/PDF buttons
        filename: Base filename used by the Excel/PDF buttons
        caption: Caption shown under the table
        number_formats: Column -> decimal places, rendered with thousands separators
        row_colors: Category value -> row background color
        page_length: Rows per page
        ordering: False disables user sorting so the given row order is kept
        order: Initial sort as (column index, "asc"/"desc") pairs
        column_filters: Add a search input above each column
        search_box: Show the global search box
        first_column_width: CSS width for the first column

    Returns:
        HtmlWidget; the caption stylesheet is attached as a decoration
    """
    table_df = df.reset_index(drop=True)
    logger.debug(f"  📋 Building table '{title}' with {len(table_df)} rows")

    def build() -> Figure:
        figure = Figure()
        for i, url in enumerate(DATATABLES_CSS):
            figure.header.add_child(CssLink(url), name=f"datatables_css_{i}")
        for i, url in enumerate(DATATABLES_JS):
            figure.header.add_child(JavascriptLink(url), name=f"datatables_js_{i}")

        figure.add_child(
            DataTable(
                table_df,
                caption=caption,
                title=title,
                filename=filename,
                number_formats=number_formats,
                row_colors=row_colors,
                page_length=page_length,
                ordering=ordering,
                order=order,
                column_filters=column_filters,
                search_box=search_box,
                first_column_width=first_column_width,
            )
        )
        return figure

    return HtmlWidget(build=build, decorations=[CAPTION_CSS])


def table_columns(config: Config, keys: Sequence[str]) -> List[str]:
    """Display labels for a list of column keys ('town', 'county', ...)."""
    return [config.get_label(key) for key in keys]
