# backend/utils/xlsx.py
from io import BytesIO
from typing import Dict, List, Optional

import pandas as pd

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _frame(rows: List[Dict], column_map: Dict[str, str]) -> pd.DataFrame:
    # Missing keys become empty cells, column order follows the map
    df = pd.DataFrame(rows, columns=list(column_map.keys()))
    return df.rename(columns=column_map)


def export_to_excel(
    rows: List[Dict],
    column_map: Dict[str, str],
    sheet_name: str = "Data",
    summary: Optional[Dict[str, object]] = None,
) -> bytes:
    """
    Write rows to an in-memory workbook and return its bytes.

    column_map maps row keys to column titles. When `summary` is given a
    second "Summary" sheet lists its label/value pairs.
    """
    output = BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        _frame(rows, column_map).to_excel(writer, index=False, sheet_name=sheet_name)
        if summary is not None:
            pd.DataFrame(list(summary.items()), columns=["Metric", "Value"]).to_excel(
                writer, index=False, sheet_name="Summary"
            )

        # Widen columns to their content
        for ws in writer.sheets.values():
            for column in ws.columns:
                width = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column)
                ws.column_dimensions[column[0].column_letter].width = min(width + 2, 60)

    return output.getvalue()
