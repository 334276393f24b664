from __future__ import annotations

# Variable naming rules shared by discovery, normalization and aggregation.

import re

from .records import VariableCategory
from .utils import snake_case


# Evaluated top to bottom; the first matching pattern wins. More specific
# patterns sit above generic ones so that e.g. "compensation per RVU" is a
# ratio and "daily rate on-call" is compensation.
CATEGORY_RULES: tuple[tuple[re.Pattern[str], VariableCategory], ...] = (
    (re.compile(r"on[\s_-]?call"), VariableCategory.COMPENSATION),
    (re.compile(r"(?<![a-z])per(?![a-z])"), VariableCategory.RATIO),
    (re.compile(r"(?<![a-z])to(?![a-z])"), VariableCategory.RATIO),
    (re.compile(r"/"), VariableCategory.RATIO),
    (re.compile(r"ratio|conversion|percent"), VariableCategory.RATIO),
    (re.compile(r"(?<![a-z])cfs?(?![a-z])"), VariableCategory.RATIO),
    (re.compile(r"(?<![a-z])rate(?![a-z])"), VariableCategory.RATIO),
    (re.compile(r"comp|salary|tcc|cash|bonus|pay|base"), VariableCategory.COMPENSATION),
    (re.compile(r"rvu|units?(?![a-z])|volume|encounter|panel|visit|(?<![a-z])asa"), VariableCategory.PRODUCTIVITY),
)


def classify_variable(name: str) -> VariableCategory:
    lowered = (name or "").lower()
    for pattern, category in CATEGORY_RULES:
        if pattern.search(lowered):
            return category
    return VariableCategory.OTHER


# Vendor spellings -> internal metric key.
VARIABLE_SYNONYMS: dict[str, str] = {
    # TCC
    "total_cash_compensation": "tcc",
    "total_compensation": "tcc",
    "total_cash_comp": "tcc",
    "cash_compensation": "tcc",
    "total_comp": "tcc",
    "tcc_excluding": "tcc_excluding_premium",
    # Work RVUs
    "work_rvu": "work_rvus",
    "wrvu": "work_rvus",
    "wrvus": "work_rvus",
    "work_relative_value_units": "work_rvus",
    # Conversion factor
    "tcc_per_work_rvus": "tcc_per_work_rvu",
    "tcc_per_wrvu": "tcc_per_work_rvu",
    "tcc_per_rvu": "tcc_per_work_rvu",
    "conversion_factor": "tcc_per_work_rvu",
    "cf": "tcc_per_work_rvu",
    "cfs": "tcc_per_work_rvu",
    "comp_per_wrvu": "tcc_per_work_rvu",
    "compensation_per_wrvu": "tcc_per_work_rvu",
    "total_cash_compensation_per_work_rvus": "tcc_per_work_rvu",
    "total_cash_compensation_per_work_rvu": "tcc_per_work_rvu",
    "compensation_to_work_rvus": "tcc_per_work_rvu",
    "compensation_to_work_rvu": "tcc_per_work_rvu",
    "compensation_to_wrvu": "tcc_per_work_rvu",
    "compensation_to_wrvus": "tcc_per_work_rvu",
    "comp_to_work_rvu": "tcc_per_work_rvu",
    "comp_to_wrvu": "tcc_per_work_rvu",
    "total_compensation_to_work_rvus": "tcc_per_work_rvu",
    "tcc_to_work_rvu": "tcc_per_work_rvu",
    "compensation_to_work_rvus_ratio": "tcc_per_work_rvu",
    # Base pay
    "base_compensation": "base_salary",
    "base_comp": "base_salary",
    "salary": "base_salary",
    "hourly_rate": "base_pay_hourly_rate",
    "base_pay_hourly": "base_pay_hourly_rate",
    # Productivity
    "asa": "asa_units",
    "asa_unit": "asa_units",
    "panel": "panel_size",
    "patient_panel": "panel_size",
    "patient_panel_size": "panel_size",
    "encounters": "total_encounters",
    "patient_encounters": "total_encounters",
    "total_visits": "total_encounters",
    "collections": "net_collections",
    "net_collection": "net_collections",
    # Other ratios
    "comp_per_encounter": "tcc_per_encounter",
    "compensation_per_encounter": "tcc_per_encounter",
    "tcc_to_collections": "tcc_to_net_collections",
    "comp_to_collections": "tcc_to_net_collections",
    "tcc_per_asa": "tcc_per_asa_unit",
    "comp_per_asa": "tcc_per_asa_unit",
}

_ON_CALL = re.compile(r"on_?call")
_ON_CALL_HINTS = ("rate", "comp", "pay", "daily")


def normalize_variable_name(name: str) -> str:
    key = snake_case(name or "")
    if key in VARIABLE_SYNONYMS:
        return VARIABLE_SYNONYMS[key]
    if _ON_CALL.search(key) and (key in {"on_call", "oncall"} or any(h in key for h in _ON_CALL_HINTS)):
        return "on_call_compensation"
    return key


DISPLAY_NAMES: dict[str, str] = {
    "tcc": "TCC (Total Cash Compensation)",
    "tcc_excluding_premium": "TCC Excluding Premium",
    "work_rvus": "Work RVUs",
    "tcc_per_work_rvu": "TCC per wRVUs (CFs)",
    "base_salary": "Base Salary",
    "base_pay_hourly_rate": "Base Pay Hourly Rate",
    "asa_units": "ASA Units",
    "panel_size": "Panel Size",
    "total_encounters": "Total Encounters",
    "net_collections": "Net Collections",
    "tcc_per_encounter": "TCC per Encounter",
    "tcc_to_net_collections": "TCC to Net Collections",
    "tcc_per_asa_unit": "TCC per ASA Unit",
    "on_call_compensation": "Daily Rate On-Call Compensation",
}

_ABBREVIATIONS = {"tcc": "TCC", "rvu": "RVU", "rvus": "RVUs", "asa": "ASA", "cf": "CF", "wrvu": "wRVU", "wrvus": "wRVUs"}


def display_name(normalized_name: str) -> str:
    if normalized_name in DISPLAY_NAMES:
        return DISPLAY_NAMES[normalized_name]
    words = [w for w in normalized_name.split("_") if w]
    return " ".join(_ABBREVIATIONS.get(w, w.capitalize()) for w in words)


METRIC_ORDER: tuple[str, ...] = ("tcc", "work_rvus", "tcc_per_work_rvu")


def metric_sort_key(metric: str) -> tuple[int, str]:
    try:
        return (METRIC_ORDER.index(metric), metric)
    except ValueError:
        return (len(METRIC_ORDER), metric)
