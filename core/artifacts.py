"""
Artifact classification: turn structured data returned by a tool into one renderable artifact.

Matchers run in order and the first one returning a variant wins:
  1. chart container  {charts: [...], columnFormats?}   -> {type: grid | chart, ...}
  2. Chart.js config   {type, data: {datasets: [...]}}   -> {type: html} self-contained Chart.js page
  3. tabular           {headers|columns, rows|data}      -> {type: html} table page
  4. anything else                                       -> {type: html} pretty-printed JSON page
"""

import copy
import html
import json
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from base.tools import split_namespaced_name

CHART_JS_CDN = "https://cdn.jsdelivr.net/npm/chart.js"
THEME_BACKGROUND = "#1a1a2e"

ArtifactMatcher = Callable[[str, Any], Optional[Dict[str, Any]]]

_CHART_PAGE = """<!DOCTYPE html><html><head><meta charset="UTF-8">
<style>*{{margin:0;padding:0;box-sizing:border-box}}body{{background:{bg};color:#fff;font-family:system-ui,sans-serif;padding:20px;height:100vh;display:flex;flex-direction:column;gap:12px}}h2{{font-size:13px;color:rgba(255,255,255,0.6);text-transform:uppercase;letter-spacing:.05em}}.chart-wrap{{flex:1;position:relative}}</style>
</head><body>
<h2>{title}</h2>
<div class="chart-wrap"><canvas id="c"></canvas></div>
<script src="{cdn}"></script>
<script>
Chart.defaults.color='rgba(255,255,255,0.65)';
Chart.defaults.borderColor='rgba(255,255,255,0.08)';
const cfg={config};
if(!cfg.options.plugins)cfg.options.plugins={{}};
cfg.options.plugins.legend={{labels:{{color:'rgba(255,255,255,0.65)'}}}};
if(cfg.options.scales){{Object.values(cfg.options.scales).forEach(s=>{{s.ticks={{color:'rgba(255,255,255,0.55)'}};s.grid={{color:'rgba(255,255,255,0.07)'}};}});}}
new Chart(document.getElementById('c'),cfg);
</script></body></html>"""

_TABLE_PAGE = """<!DOCTYPE html><html><head><meta charset="UTF-8">
<style>*{{margin:0;padding:0;box-sizing:border-box}}body{{background:{bg};color:#fff;font-family:system-ui,sans-serif;padding:20px;overflow:auto}}table{{width:100%;border-collapse:collapse;font-size:13px}}th{{background:rgba(255,255,255,0.08);color:rgba(255,255,255,0.8);padding:10px 12px;text-align:left;font-weight:600;border-bottom:1px solid rgba(255,255,255,0.12)}}td{{padding:9px 12px;border-bottom:1px solid rgba(255,255,255,0.06);color:rgba(255,255,255,0.85)}}tr:hover td{{background:rgba(255,255,255,0.04)}}</style>
</head><body><table><thead>{thead}</thead><tbody>{tbody}</tbody></table></body></html>"""

_JSON_PAGE = """<!DOCTYPE html><html><head><meta charset="UTF-8">
<style>body{{background:{bg};color:#a8d8a8;font-family:monospace;padding:20px;font-size:12px;white-space:pre-wrap;overflow:auto}}</style>
</head><body>{body}</body></html>"""


def _script_json(value: Any) -> str:
    """JSON safe to inline in a <script> element."""
    return json.dumps(value, default=str).replace("</", "<\\/")


def _cell(value: Any) -> str:
    return html.escape("" if value is None else str(value))


def match_chart_container(label: str, data: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(data, dict):
        return None
    charts = data.get("charts")
    if not isinstance(charts, list) or not charts:
        return None
    first = charts[0] if isinstance(charts[0], dict) else {}
    title = f"{label} Analysis"
    if first.get("type") == "grid":
        return {
            "title": title,
            "type": "grid",
            "gridData": first,
            "columnFormats": data.get("columnFormats") or {},
        }
    if first.get("type") == "chart" or first.get("data"):
        option = first.get("option") if isinstance(first.get("option"), dict) else {}
        return {
            "title": title,
            "type": "chart",
            "chartData": charts,
            "chartType": option.get("chartType") or "line",
        }
    return None


def match_chartjs_config(label: str, data: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(data, dict) or not data.get("type"):
        return None
    inner = data.get("data")
    if not isinstance(inner, dict) or not isinstance(inner.get("datasets"), list):
        return None
    config = copy.deepcopy(data)
    options = config.get("options") if isinstance(config.get("options"), dict) else {}
    plugins = options.get("plugins") if isinstance(options.get("plugins"), dict) else {}
    title_cfg = plugins.get("title") if isinstance(plugins.get("title"), dict) else {}
    title = str(title_cfg.get("text") or f"{label} Chart")
    # Title is rendered in the page heading instead.
    plugins.pop("title", None)
    if plugins:
        options["plugins"] = plugins
    options["responsive"] = True
    options["maintainAspectRatio"] = False
    config["options"] = options
    page = _CHART_PAGE.format(
        bg=THEME_BACKGROUND, title=html.escape(title), cdn=CHART_JS_CDN, config=_script_json(config)
    )
    return {"title": title, "html": page, "type": "html"}


def _table_headers(data: Dict[str, Any]) -> Optional[List[Any]]:
    if isinstance(data.get("headers"), list):
        return data["headers"]
    columns = data.get("columns")
    if not isinstance(columns, list):
        return None
    headers = []
    for column in columns:
        if isinstance(column, dict):
            headers.append(column.get("header") or column.get("label") or column.get("key") or "")
        else:
            headers.append(column)
    return headers


def match_table(label: str, data: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(data, dict):
        return None
    headers = _table_headers(data)
    rows = data.get("rows") if data.get("rows") is not None else data.get("data")
    if not headers and not rows:
        return None
    thead = "<tr>" + "".join(f"<th>{_cell(h)}</th>" for h in headers) + "</tr>" if headers else ""
    body_rows = []
    if isinstance(rows, list):
        for row in rows:
            if isinstance(row, dict):
                values = list(row.values())
            elif isinstance(row, (list, tuple)):
                values = list(row)
            else:
                values = [row]
            body_rows.append("<tr>" + "".join(f"<td>{_cell(v)}</td>" for v in values) + "</tr>")
    page = _TABLE_PAGE.format(bg=THEME_BACKGROUND, thead=thead, tbody="".join(body_rows))
    return {"title": f"{label} Data", "html": page, "type": "html"}


def match_json_fallback(label: str, data: Any) -> Optional[Dict[str, Any]]:
    body = html.escape(json.dumps(data, indent=2, default=str, ensure_ascii=False))
    return {"title": f"{label} Data", "html": _JSON_PAGE.format(bg=THEME_BACKGROUND, body=body), "type": "html"}


ARTIFACT_MATCHERS: List[ArtifactMatcher] = [
    match_chart_container,
    match_chartjs_config,
    match_table,
    match_json_fallback,
]


def build_artifact(tool_name: str, data: Any) -> Optional[Dict[str, Any]]:
    """First matching variant for data returned by tool_name; None only when data is None or every matcher failed."""
    if data is None:
        return None
    _, label = split_namespaced_name(tool_name or "")
    for matcher in ARTIFACT_MATCHERS:
        try:
            artifact = matcher(label, data)
        except Exception as e:
            logger.warning("Artifact matcher {} failed for {}: {}", matcher.__name__, tool_name, e)
            continue
        if artifact is not None:
            logger.debug("Artifact built for {}: type={} title={}", tool_name, artifact.get("type"), artifact.get("title"))
            return artifact
    return None
