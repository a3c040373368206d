"""
Best-effort structured-data extraction from external tool text output.

External tools answer with free text. Some (data agents behind MCP) wrap chart/grid data in
{"answer": [{"text": ..., "structuredData": {...}}]}; others embed it as a fenced ```json block or
an HTML <table>. Nothing here raises: when no shape matches, the caller gets (text, None).
"""

import json
import re
from typing import Any, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup
from loguru import logger

_FENCED_JSON = re.compile(r"```(?:json|JSON)?\s*\n(.*?)\n?```", re.DOTALL)

STRUCTURED_DATA_FLAGS = ("needChartData", "need_chart_data")


def wants_structured_data(arguments: Any) -> bool:
    """True when the call asked the tool for chart/grid data (needChartData / need_chart_data truthy)."""
    if not isinstance(arguments, dict):
        return False
    for key in STRUCTURED_DATA_FLAGS:
        value = arguments.get(key)
        if isinstance(value, str):
            if value.strip().lower() in ("true", "1", "yes"):
                return True
        elif value:
            return True
    return False


def _from_answer_shape(parsed: Any) -> Tuple[Optional[str], Optional[Any]]:
    """{answer: [{text, structuredData}]} -> (joined text, first structuredData)."""
    if not isinstance(parsed, dict) or not isinstance(parsed.get("answer"), list):
        return None, None
    texts: List[str] = []
    structured = None
    for item in parsed["answer"]:
        if not isinstance(item, dict):
            continue
        if isinstance(item.get("text"), str) and item["text"].strip():
            texts.append(item["text"])
        if structured is None and item.get("structuredData") is not None:
            structured = item["structuredData"]
    return ("\n".join(texts) if texts else None), structured


def extract_fenced_json(text: str) -> Optional[Any]:
    """First fenced code block that parses as a JSON object or array."""
    for match in _FENCED_JSON.finditer(text or ""):
        try:
            value = json.loads(match.group(1).strip())
        except ValueError:
            continue
        if isinstance(value, (dict, list)):
            return value
    return None


def extract_html_table(text: str) -> Optional[Dict[str, Any]]:
    """First <table> in text -> {headers, rows}. Header cells come from <th> (or the first row when there are none)."""
    if not text or "<table" not in text.lower():
        return None
    try:
        soup = BeautifulSoup(text, "html.parser")
    except Exception as e:
        logger.debug("HTML table scan failed: {}", e)
        return None
    table = soup.find("table")
    if table is None:
        return None
    headers = [th.get_text(" ", strip=True) for th in table.find_all("th")]
    rows: List[List[str]] = []
    for tr in table.find_all("tr"):
        cells = tr.find_all("td")
        if cells:
            rows.append([td.get_text(" ", strip=True) for td in cells])
    if not headers and rows:
        headers, rows = rows[0], rows[1:]
    if not headers and not rows:
        return None
    return {"headers": headers, "rows": rows}


def extract_structured_data(text: str, requested: bool) -> Tuple[str, Optional[Any]]:
    """
    Returns (text for the model, structured data or None).
    JSON text is always checked for the answer shape; the embedded-JSON and HTML-table scans only run
    when the caller requested structured data and the text is not JSON.
    """
    text = text or ""
    stripped = text.strip()
    try:
        parsed = json.loads(stripped) if stripped else None
        is_json = bool(stripped)
    except ValueError:
        parsed = None
        is_json = False
    if is_json:
        answer_text, structured = _from_answer_shape(parsed)
        return (answer_text if answer_text is not None else text), structured
    if not requested:
        return text, None
    structured = extract_fenced_json(text)
    if structured is None:
        structured = extract_html_table(text)
    if structured is None:
        logger.debug("No structured data found in {} chars of tool output", len(text))
    return text, structured
