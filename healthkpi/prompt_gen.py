from __future__ import annotations

import json
from collections import Counter
from typing import Any

SUMMARY_TYPES = ("current", "general")

TREND_TOLERANCE = 0.02  # second-half average must move >2% to count as a trend

KPI_LINES: tuple[tuple[str, str, str], ...] = (
    ("weight", "Peso", "kg"),
    ("muscle", "Masa muscular", "kg"),
    ("fat", "Masa grasa", "kg"),
    ("totalSleep", "Sueño total promedio", ""),
    ("deepSleep", "Sueño profundo promedio", ""),
    ("steps", "Pasos promedio", ""),
    ("waist", "Cintura", "cm"),
)


def _fmt(n: float | None, digits: int = 1) -> str:
    if n is None:
        return "N/D"
    return f"{n:.{digits}f}"


def calculate_stats(values: list[float | None]) -> dict[str, Any] | None:
    """Average, range and a first-half vs second-half trend of a series."""
    vals = [float(v) for v in values if v is not None]
    if not vals:
        return None

    average = sum(vals) / len(vals)
    trend = "stable"
    mid = len(vals) // 2
    if mid > 0:
        first = sum(vals[:mid]) / mid
        second = sum(vals[mid:]) / (len(vals) - mid)
        if second > first * (1 + TREND_TOLERANCE):
            trend = "increasing"
        elif second < first * (1 - TREND_TOLERANCE):
            trend = "decreasing"

    return {
        "average": round(average, 2),
        "min": round(min(vals), 2),
        "max": round(max(vals), 2),
        "trend": trend,
    }


def _values(series: list[dict[str, Any]], field: str) -> list[float | None]:
    return [p.get(field) for p in series]


def _with_records(stats: dict[str, Any] | None, n: int) -> dict[str, Any] | None:
    if stats is None:
        return None
    return {**stats, "records": n}


def build_patient_context(dashboard: dict[str, Any], summary_type: str = "current") -> dict[str, Any]:
    """Text-ready context for the summarization service, from a built dashboard."""
    if summary_type not in SUMMARY_TYPES:
        raise ValueError(f"Invalid summary type: {summary_type}")

    charts = dashboard.get("chartData") or {}
    weight = charts.get("weightData") or []
    composition = charts.get("compositionData") or []
    sleep = charts.get("sleepData") or []
    steps = charts.get("stepsData") or []
    waist = charts.get("waistData") or []
    analytics = dashboard.get("analytics") or []

    data: dict[str, Any] = {}
    if weight:
        data["weight"] = _with_records(calculate_stats(_values(weight, "weight")), len(weight))
    if composition:
        muscle = [p["value"] for p in composition if p.get("breakdown") == "muscle_mass"]
        fat = [p["value"] for p in composition if p.get("breakdown") == "fat_mass_weight"]
        data["muscle"] = calculate_stats(muscle)
        data["fat"] = calculate_stats(fat)
    if sleep:
        duration = calculate_stats(_values(sleep, "duration"))
        deep = calculate_stats(_values(sleep, "deepSleep"))
        data["sleep"] = {
            "averageDuration": duration["average"] if duration else None,
            "averageDeepSleep": deep["average"] if deep else None,
            "sleepTrend": duration["trend"] if duration else None,
            "deepSleepTrend": deep["trend"] if deep else None,
            "deepSleepEstimated": any(p.get("deepSleepEstimated") for p in sleep),
            "records": len(sleep),
            "qualityDistribution": dict(Counter(str(p.get("quality") or "unknown") for p in sleep)),
        }
    if steps:
        data["activity"] = _with_records(calculate_stats(_values(steps, "steps")), len(steps))
    if waist:
        data["waist"] = _with_records(calculate_stats(_values(waist, "measurement")), len(waist))
    if analytics:
        data["analytics"] = {
            "totalTests": len(analytics),
            "testTypes": sorted({str(a.get("type")) for a in analytics if a.get("type")}),
            "recentTests": [
                {
                    "date": a.get("date"),
                    "type": a.get("type"),
                    "markersCount": len(a.get("markers") or []),
                    "outOfRange": [m.get("name") for m in a.get("markers") or [] if m.get("outOfRange")],
                }
                for a in analytics[:3]
            ],
        }

    periods = dashboard.get("periods") or {}
    return {
        "summaryType": summary_type,
        "dateRange": periods.get("current") if summary_type == "current" else None,
        "kpis": dashboard.get("kpis") or {},
        "estimates": dashboard.get("estimates") or {},
        "data": data,
    }


def _instructions(summary_type: str) -> str:
    base = """# Instrucciones
Eres un asistente médico que analiza datos de salud y bienestar para profesionales sanitarios.
- Usa terminología médica apropiada pero accesible
- Destaca tendencias significativas y valores que requieran atención
- Indica cuándo un dato es estimado y no medido"""
    if summary_type == "current":
        return base + "\n- Céntrate en el período seleccionado y en su comparación con el anterior"
    return base + "\n- Céntrate en la evolución a largo plazo y en el seguimiento recomendado"


def _kpi_block(kpis: dict[str, Any], estimates: dict[str, list[str]]) -> str:
    lines = []
    for key, label, unit in KPI_LINES:
        k = kpis.get(key) or {}
        suffix = f" {unit}" if unit else ""
        note = " (estimado)" if estimates.get(key) else ""
        lines.append(
            f"- {label}: {_fmt(k.get('current'), 2)}{suffix}{note}"
            f" (anterior: {_fmt(k.get('previous'), 2)}{suffix}, cambio: {_fmt(k.get('change'))}%)"
        )
    return "\n".join(lines)


def _stats_line(label: str, stats: dict[str, Any] | None, unit: str = "") -> str:
    if not stats:
        return f"- {label}: sin datos"
    suffix = f" {unit}" if unit else ""
    return (
        f"- {label}: promedio {_fmt(stats['average'], 2)}{suffix}"
        f" (rango {_fmt(stats['min'], 2)}-{_fmt(stats['max'], 2)}{suffix}, tendencia {stats['trend']})"
    )


def build_prompt(summary_type: str, context: dict[str, Any]) -> str:
    if summary_type not in SUMMARY_TYPES:
        raise ValueError(f"Invalid summary type: {summary_type}")

    data = context.get("data") or {}
    parts = [_instructions(summary_type), ""]

    date_range = context.get("dateRange")
    if summary_type == "current" and date_range:
        parts.append(f"# Período: {date_range.get('label')} ({date_range.get('start')} a {date_range.get('end')})")
    else:
        parts.append("# Historial completo")
    parts.append("")

    parts.append("## KPIs")
    parts.append(_kpi_block(context.get("kpis") or {}, context.get("estimates") or {}))
    parts.append("")

    if "weight" in data or "muscle" in data or "fat" in data:
        parts.append("## Peso y composición corporal")
        if "weight" in data:
            parts.append(_stats_line("Peso", data.get("weight"), "kg"))
        if "muscle" in data:
            parts.append(_stats_line("Masa muscular", data.get("muscle"), "kg"))
        if "fat" in data:
            parts.append(_stats_line("Masa grasa", data.get("fat"), "kg"))
        parts.append("")

    sleep = data.get("sleep")
    if sleep:
        parts.append("## Sueño")
        parts.append(f"- Duración promedio: {_fmt(sleep['averageDuration'], 2)} (tendencia {sleep['sleepTrend']})")
        deep_note = " (estimado)" if sleep["deepSleepEstimated"] else ""
        parts.append(f"- Sueño profundo promedio: {_fmt(sleep['averageDeepSleep'], 2)}{deep_note}")
        parts.append(f"- Distribución de calidad: {json.dumps(sleep['qualityDistribution'], ensure_ascii=False)}")
        parts.append(f"- Registros analizados: {sleep['records']}")
        parts.append("")

    if "activity" in data:
        parts.append("## Actividad física")
        parts.append(_stats_line("Pasos diarios", data.get("activity")))
        parts.append("")

    if "waist" in data:
        parts.append("## Cintura")
        parts.append(_stats_line("Medida", data.get("waist"), "cm"))
        parts.append("")

    analytics = data.get("analytics")
    if analytics:
        parts.append("## Analíticas clínicas")
        parts.append(f"- Total de exámenes: {analytics['totalTests']}")
        parts.append(f"- Tipos: {', '.join(analytics['testTypes']) or 'N/D'}")
        parts.append(f"- Recientes: {json.dumps(analytics['recentTests'], ensure_ascii=False)}")
        parts.append("")

    parts.append("Proporciona un resumen profesional que incluya:")
    parts.append("1. Estado general de salud")
    parts.append("2. Tendencias significativas")
    parts.append("3. Áreas de preocupación (si las hay)")
    parts.append("4. Recomendaciones y próximos pasos")
    return "\n".join(parts)
