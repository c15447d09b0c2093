"""
Lab parameter vocabulary.

Every parameter the pipeline knows about is listed once, keyed by
ParameterId, with its accepted names, LOINC code, adult reference range,
canonical unit and display category. Lookups go through exact alias
matching on a normalized name so "Hemoglobin A1c" never resolves to
hemoglobin.
"""

import re
from enum import Enum
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field


class ParameterId(str, Enum):
    """Closed set of recognised lab parameters."""
    GLUCOSE = "glucose"
    HBA1C = "hba1c"
    TOTAL_CHOLESTEROL = "total_cholesterol"
    LDL = "ldl"
    HDL = "hdl"
    TRIGLYCERIDES = "triglycerides"
    HEMOGLOBIN = "hemoglobin"
    WBC = "wbc"
    PLATELETS = "platelets"
    CREATININE = "creatinine"
    UREA = "urea"
    EGFR = "egfr"
    ALT = "alt"
    AST = "ast"
    BILIRUBIN = "bilirubin"
    ALBUMIN = "albumin"
    CRP = "crp"
    ESR = "esr"
    VITAMIN_D = "vitamin_d"
    VITAMIN_B12 = "vitamin_b12"
    FERRITIN = "ferritin"
    IRON = "iron"
    TSH = "tsh"
    FREE_T4 = "free_t4"
    TROPONIN = "troponin"


class LabParameter(BaseModel):
    """Static definition of a lab parameter."""

    model_config = ConfigDict(frozen=True)

    id: ParameterId
    display_name: str
    aliases: Tuple[str, ...]
    loinc: Optional[str] = None
    normal_range: str = Field(..., description="Adult reference range, e.g. '70-100' or '<200'")
    unit: str
    category: str = Field(..., description="Display category used for test results")


LAB_PARAMETERS: Dict[ParameterId, LabParameter] = {
    p.id: p
    for p in [
        LabParameter(
            id=ParameterId.GLUCOSE, display_name="Glucose",
            aliases=("glucose", "blood glucose", "fasting glucose", "fasting blood glucose",
                     "fasting blood sugar", "blood sugar", "fbs", "random blood sugar", "rbs"),
            loinc="2345-7", normal_range="70-100", unit="mg/dL", category="metabolic",
        ),
        LabParameter(
            id=ParameterId.HBA1C, display_name="HbA1c",
            aliases=("hba1c", "a1c", "hemoglobin a1c", "haemoglobin a1c", "glycated hemoglobin",
                     "glycosylated hemoglobin"),
            loinc="4548-4", normal_range="<5.7", unit="%", category="metabolic",
        ),
        LabParameter(
            id=ParameterId.TOTAL_CHOLESTEROL, display_name="Total Cholesterol",
            aliases=("cholesterol", "total cholesterol", "serum cholesterol", "cholesterol total"),
            loinc="2093-3", normal_range="<200", unit="mg/dL", category="lipid",
        ),
        LabParameter(
            id=ParameterId.LDL, display_name="LDL Cholesterol",
            aliases=("ldl", "ldl cholesterol", "ldl-c", "ldl-cholesterol", "ldl direct"),
            loinc="13457-7", normal_range="<100", unit="mg/dL", category="lipid",
        ),
        LabParameter(
            id=ParameterId.HDL, display_name="HDL Cholesterol",
            aliases=("hdl", "hdl cholesterol", "hdl-c", "hdl-cholesterol"),
            loinc="2085-9", normal_range=">40", unit="mg/dL", category="lipid",
        ),
        LabParameter(
            id=ParameterId.TRIGLYCERIDES, display_name="Triglycerides",
            aliases=("triglycerides", "triglyceride", "tg", "serum triglycerides"),
            loinc="2571-8", normal_range="<150", unit="mg/dL", category="lipid",
        ),
        LabParameter(
            id=ParameterId.HEMOGLOBIN, display_name="Hemoglobin",
            aliases=("hemoglobin", "haemoglobin", "hb", "hgb"),
            loinc="718-7", normal_range="12-15.5", unit="g/dL", category="hematology",
        ),
        LabParameter(
            id=ParameterId.WBC, display_name="WBC",
            aliases=("wbc", "white blood cells", "white blood cell count", "total leukocyte count", "tlc"),
            loinc="6690-2", normal_range="4.5-11.0", unit="K/uL", category="hematology",
        ),
        LabParameter(
            id=ParameterId.PLATELETS, display_name="Platelets",
            aliases=("platelets", "platelet count", "plt"),
            loinc="777-3", normal_range="150-400", unit="K/uL", category="hematology",
        ),
        LabParameter(
            id=ParameterId.CREATININE, display_name="Creatinine",
            aliases=("creatinine", "serum creatinine", "creat"),
            loinc="2160-0", normal_range="0.6-1.3", unit="mg/dL", category="kidney",
        ),
        LabParameter(
            id=ParameterId.UREA, display_name="Blood Urea Nitrogen",
            aliases=("urea", "bun", "blood urea nitrogen", "blood urea", "serum urea"),
            loinc="3094-0", normal_range="7-20", unit="mg/dL", category="kidney",
        ),
        LabParameter(
            id=ParameterId.EGFR, display_name="eGFR",
            aliases=("egfr", "estimated gfr", "gfr"),
            loinc="33914-3", normal_range=">60", unit="mL/min/1.73m2", category="kidney",
        ),
        LabParameter(
            id=ParameterId.ALT, display_name="ALT",
            aliases=("alt", "sgpt", "alanine aminotransferase", "alt (sgpt)", "sgpt (alt)"),
            loinc="1742-6", normal_range="7-56", unit="U/L", category="liver",
        ),
        LabParameter(
            id=ParameterId.AST, display_name="AST",
            aliases=("ast", "sgot", "aspartate aminotransferase", "ast (sgot)", "sgot (ast)"),
            loinc="1920-8", normal_range="10-40", unit="U/L", category="liver",
        ),
        LabParameter(
            id=ParameterId.BILIRUBIN, display_name="Total Bilirubin",
            aliases=("bilirubin", "total bilirubin", "bilirubin total", "serum bilirubin"),
            loinc="1975-2", normal_range="0.1-1.2", unit="mg/dL", category="liver",
        ),
        LabParameter(
            id=ParameterId.ALBUMIN, display_name="Albumin",
            aliases=("albumin", "serum albumin"),
            loinc="1751-7", normal_range="3.5-5.0", unit="g/dL", category="liver",
        ),
        LabParameter(
            id=ParameterId.CRP, display_name="C-Reactive Protein",
            aliases=("crp", "c-reactive protein", "c reactive protein", "hs-crp", "hscrp"),
            loinc="1988-5", normal_range="<3", unit="mg/L", category="inflammation",
        ),
        LabParameter(
            id=ParameterId.ESR, display_name="ESR",
            aliases=("esr", "erythrocyte sedimentation rate", "sed rate"),
            loinc="4537-7", normal_range="0-20", unit="mm/hr", category="inflammation",
        ),
        LabParameter(
            id=ParameterId.VITAMIN_D, display_name="Vitamin D",
            aliases=("vitamin d", "vit d", "25-oh vitamin d", "25 hydroxy vitamin d", "vitamin d3",
                     "25-hydroxyvitamin d"),
            loinc="1989-3", normal_range="30-100", unit="ng/mL", category="nutrition",
        ),
        LabParameter(
            id=ParameterId.VITAMIN_B12, display_name="Vitamin B12",
            aliases=("vitamin b12", "vit b12", "b12", "cobalamin"),
            loinc="2132-9", normal_range="200-900", unit="pg/mL", category="nutrition",
        ),
        LabParameter(
            id=ParameterId.FERRITIN, display_name="Ferritin",
            aliases=("ferritin", "serum ferritin"),
            loinc="2276-4", normal_range="15-150", unit="ng/mL", category="nutrition",
        ),
        LabParameter(
            id=ParameterId.IRON, display_name="Iron",
            aliases=("iron", "serum iron"),
            loinc="2498-4", normal_range="60-170", unit="ug/dL", category="nutrition",
        ),
        LabParameter(
            id=ParameterId.TSH, display_name="TSH",
            aliases=("tsh", "thyroid stimulating hormone", "thyrotropin"),
            loinc="3016-3", normal_range="0.4-4.0", unit="mIU/L", category="thyroid",
        ),
        LabParameter(
            id=ParameterId.FREE_T4, display_name="Free T4",
            aliases=("free t4", "ft4", "free thyroxine"),
            loinc="3024-7", normal_range="0.8-1.8", unit="ng/dL", category="thyroid",
        ),
        LabParameter(
            id=ParameterId.TROPONIN, display_name="Troponin I",
            aliases=("troponin", "troponin i", "trop i", "ctni"),
            loinc="10839-9", normal_range="<0.04", unit="ng/mL", category="cardiac",
        ),
    ]
}

# Build alias-to-id lookup
_ALIAS_INDEX: Dict[str, ParameterId] = {}
for _param in LAB_PARAMETERS.values():
    for _alias in _param.aliases:
        _ALIAS_INDEX[_alias] = _param.id

# Keys accepted by the structured-document fallback scan
STRUCTURED_TERM_ALLOWLIST: List[str] = [
    "glucose",
    "cholesterol",
    "hemoglobin",
    "creatinine",
    "urea",
    "bilirubin",
]


def normalize_parameter_name(name: str) -> str:
    """Lowercase, collapse whitespace and strip punctuation around a parameter name."""
    normalized = re.sub(r"\s+", " ", name.strip().lower())
    return normalized.strip(" .:;,-*")


def lookup_parameter(name: str) -> Optional[LabParameter]:
    """Resolve a free-text parameter name to its definition, or None when unknown."""
    param_id = _ALIAS_INDEX.get(normalize_parameter_name(name))
    if param_id is None:
        return None
    return LAB_PARAMETERS[param_id]


def lookup_loinc(name: str) -> Optional[str]:
    param = lookup_parameter(name)
    return param.loinc if param else None
