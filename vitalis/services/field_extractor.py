"""
Strategy-specific field extraction for medical report text.

Each strategy turns report text into ExtractedMedicalData plus the evidence
trail (findings, medication mentions, traceability). Patterns work line by
line so every finding's text is a literal span of the input, and at most one
lab value is taken from any tabular line. Nothing here reads the clock or
uses randomness: the same text and strategy always give the same result.
"""

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple
from pydantic import ValidationError
from vitalis.constants.lab_parameters import (
    STRUCTURED_TERM_ALLOWLIST,
    LabParameter,
    lookup_parameter,
    normalize_parameter_name,
)
from vitalis.schemas.extraction import (
    Finding,
    FindingKind,
    Measurement,
    MedicationMention,
    OmniExtractionResult,
    ParsingMethod,
    Polarity,
    SourceMetadata,
    TraceabilityEntry,
)
from vitalis.schemas.reports import (
    BloodPressure,
    ExtractedMedicalData,
    LabStatus,
    LabValue,
    Medication,
    TestResult,
    VitalSigns,
)
from vitalis.utils.ranges import NOT_AVAILABLE, is_out_of_range, lab_status, parse_range, result_status

logger = logging.getLogger(__name__)

TABULAR_CONFIDENCE = 0.95
HANDWRITTEN_CONFIDENCE = 0.75
HANDWRITTEN_MEDICATION_CONFIDENCE = 0.85
HANDWRITTEN_LAB_CONFIDENCE = 0.80
NARRATIVE_CONFIDENCE = 0.88
NEGATION_CONFIDENCE = 0.90
POSITIVE_MENTION_CONFIDENCE = 0.92
TEMPORAL_CONFIDENCE = 0.88
MEASUREMENT_CONFIDENCE = 0.85
STRUCTURED_CONFIDENCE = 0.96
STRUCTURED_FIELD_CONFIDENCE = 0.98
STRUCTURED_FALLBACK_CONFIDENCE = 0.92
SCAN_CONFIDENCE_FACTOR = 0.85
VITAL_SIGN_CONFIDENCE = 0.90

# ----------------------------------------------------------------------------
# Shared patterns
# ----------------------------------------------------------------------------

NAME = r"(?P<name>[A-Za-z][A-Za-z0-9 ()\-/,.+'&]*?)"
# A number that is not the start of a date, ratio or range
VALUE = r"(?P<value>-?\d+(?:\.\d+)?)(?!\d|\.\d|\s*[/\-–]\s*\d)"
UNIT = r"(?P<unit>%|[A-Za-zµ][A-Za-z0-9µ/.^%]*)"

RANGE_TEXT = re.compile(
    r"(?:<=?|>=?|≤|≥)\s*\d+(?:\.\d+)?|\d+(?:\.\d+)?\s*(?:-|–|to)\s*\d+(?:\.\d+)?",
    re.IGNORECASE,
)
KNOWN_UNIT = re.compile(
    r"(?<![A-Za-z])(mg/dl|g/dl|mmol/l|µmol/l|umol/l|meq/l|mg/l|ng/ml|pg/ml|ng/dl|ug/dl|µg/dl|mcg/dl"
    r"|uiu/ml|µiu/ml|miu/l|iu/l|u/l|units/l|mm/hr|mm/h|k/ul|m/ul|x10\^?\d/ul|10\^\d/ul|cells/ul|/cumm"
    r"|fl|pg|%|ml/min(?:/1\.73\s?m2)?|mmhg|bpm)(?![A-Za-z])",
    re.IGNORECASE,
)
FLAG_WORD = re.compile(r"(?<![A-Za-z])(HIGH|LOW|CRITICAL|H|L)(?![A-Za-z])|\*")
FLAG_WORDS = {"H": "high", "HIGH": "high", "L": "low", "LOW": "low", "CRITICAL": "critical", "*": "high"}

COLON_LAB = re.compile(r"^\s*[-*•]?\s*" + NAME + r"\s*[:=]\s*" + VALUE + r"\s*" + UNIT + r"?")
COLUMNAR_LAB = re.compile(r"^\s*[-*•]?\s*" + NAME + r"\s+" + VALUE + r"(?P<rest>.*)$")
PIPE_VALUE = re.compile(r"^(-?\d+(?:\.\d+)?)\s*(\*|H|L|HIGH|LOW|CRITICAL)?$", re.IGNORECASE)

# Labels that look like "Name: number" but are report metadata, not labs
METADATA_LABELS = {
    "age", "date", "time", "page", "patient", "patient id", "patient name", "name", "id", "sex",
    "gender", "phone", "mobile", "sample", "sample id", "sample no", "lab no", "lab id", "uhid",
    "ref", "ref no", "reg no", "registration no", "bill no", "order no", "visit no", "bed",
    "room", "year", "pin", "pincode", "zip", "dob", "date of birth", "mrn", "test", "result",
    "serial no", "sr no", "s no", "no",
}

BP_PATTERN = re.compile(
    r"\b(?:BP|B\.P\.?|Blood\s+Pressure)\s*(?:[:\-=]|\b(?:is|was|of)\b)?\s*"
    r"(?P<systolic>\d{2,3})\s*/\s*(?P<diastolic>\d{2,3})",
    re.IGNORECASE,
)
HEART_RATE_PATTERN = re.compile(
    r"\b(?:HR|Heart\s+Rate|Pulse(?:\s+Rate)?)\s*(?:[:\-=]|\b(?:is|was|of)\b)?\s*"
    r"(?P<value>\d{2,3})(?:\s*(?:bpm|/min|beats))?",
    re.IGNORECASE,
)
TEMPERATURE_PATTERN = re.compile(
    r"\bTemp(?:erature)?\.?\s*[:\-=]?\s*(?P<value>\d{2,3}(?:\.\d+)?)\s*°?\s*(?P<scale>[CF])?\b",
    re.IGNORECASE,
)
WEIGHT_PATTERN = re.compile(
    r"\b(?:Weight|Wt)\.?\s*[:\-=]?\s*(?P<value>\d{2,3}(?:\.\d+)?)\s*(?P<unit>kgs?|lbs?)?\b",
    re.IGNORECASE,
)
HEIGHT_PATTERN = re.compile(
    r"\b(?:Height|Ht)\.?\s*[:\-=]?\s*(?P<value>\d{1,3}(?:\.\d+)?)\s*(?P<unit>cm|m|in)?\b",
    re.IGNORECASE,
)
BMI_PATTERN = re.compile(r"\bBMI\s*[:\-=]?\s*(?P<value>\d{2}(?:\.\d+)?)", re.IGNORECASE)

REPORT_DATE_PATTERN = re.compile(
    r"\b(?:Report\s+Date|Date\s+of\s+Report|Reported(?:\s+On)?|Collected(?:\s+On)?|Date)\s*:\s*"
    r"(?P<date>\d{1,4}[-/.]\d{1,2}[-/.]\d{1,4}|\d{1,2}\s+[A-Za-z]{3,9},?\s+\d{4}|[A-Za-z]{3,9}\s+\d{1,2},?\s+\d{4})",
    re.IGNORECASE,
)
DOCTOR_LABEL_PATTERN = re.compile(
    r"\b(?:Doctor|Physician|Consultant|Referred\s+By|Ref\.?\s+By)\s*:\s*(?P<name>(?:Dr\.?\s*)?[A-Z][A-Za-z.]*(?:[ \t]+[A-Z][A-Za-z.]*){0,3})",
    re.IGNORECASE,
)
DOCTOR_TITLE_PATTERN = re.compile(r"\bDr\.?[ \t]+(?P<name>[A-Z][A-Za-z.]*(?:[ \t]+[A-Z][A-Za-z.]*){0,2})")
HOSPITAL_LABEL_PATTERN = re.compile(
    r"^\s*(?:Hospital|Clinic|Laboratory|Lab\s+Name|Facility|Centre|Center)\s*:\s*(?P<name>.+?)\s*$",
    re.IGNORECASE,
)
HOSPITAL_HEADER_PATTERN = re.compile(
    r"\b(?:hospital|diagnostics|laboratory|laboratories|labs|clinic|medical\s+cent(?:er|re)|pathology)\b",
    re.IGNORECASE,
)

# Handwritten notes
MEDICATION_PATTERN = re.compile(
    r"\b(?:Tab|Tablet|Cap|Capsule|Syrup|Syp|Inj|Injection)\b\.?[ \t]*:?[ \t]*"
    r"(?P<name>[A-Za-z][A-Za-z\-]*(?:[ \t]+[A-Za-z][A-Za-z\-]*)*)"
    r"(?:[ \t]+(?P<dose>\d+(?:\.\d+)?)[ \t]*(?P<dose_unit>mg|mcg|µg|g|ml|iu|units?)\b)?",
    re.IGNORECASE,
)
FREQUENCY_PATTERN = re.compile(
    r"\b(?:OD|BD|BID|TDS|TID|QID|HS|SOS|PRN|STAT|(?:once|twice|thrice)\s+(?:a\s+)?(?:daily|day)"
    r"|every\s+\d+\s+hours?|\d-\d-\d)\b",
    re.IGNORECASE,
)
DURATION_PATTERN = re.compile(r"(?:\bx[ \t]*|\bfor[ \t]+)(?P<count>\d+)[ \t]*(?P<unit>days?|weeks?|months?)\b", re.IGNORECASE)
MEDICATION_NAME_STOPWORDS = {
    "od", "bd", "bid", "tds", "tid", "qid", "hs", "sos", "prn", "stat", "once", "twice", "thrice",
    "daily", "for", "after", "before", "with", "x", "at", "morning", "night", "in", "every", "then",
}
COMPLAINT_PATTERN = re.compile(r"\b(?:C/O|Complaints?(?:\s+of)?)\s*[:\-]?\s*(?P<text>[^.\n]+)", re.IGNORECASE)
INLINE_DIAGNOSIS_PATTERN = re.compile(
    r"\b(?:Provisional\s+Diagnosis|Diagnosis|Impression|Dx)\s*[:\-]\s*(?P<text>[^.\n]+)",
    re.IGNORECASE,
)
HANDWRITTEN_LAB_PATTERN = re.compile(
    r"(?P<name>[A-Za-z][A-Za-z0-9 ]*?)\s*[:\-]?\s*(?P<value>\d+(?:\.\d+)?)\s*"
    r"(?P<unit>mg/dL|mmol/L|g/dL|%|units/L|IU/L|U/L)",
    re.IGNORECASE,
)

# Narrative reports
NEGATION_PATTERN = re.compile(
    r"\b(?:no|not|without|absent|denies|negative\s+for)\b[ \t]+(?P<term>[^.\n;]+)",
    re.IGNORECASE,
)
POSITIVE_PATTERN = re.compile(
    r"\b(?:shows|demonstrates|reveals|indicates|positive\s+for|evidence\s+of)\b[ \t]+(?P<term>[^.\n;]+)",
    re.IGNORECASE,
)
NEGATION_PREFIX = re.compile(r"\b(?:no|not|without)[ \t]+$", re.IGNORECASE)
TEMPORAL_PATTERN = re.compile(
    r"\b(?P<word>improved|worsened|stable|increased|decreased)[ \t]+(?:since|from)[ \t]+[^.\n;]+",
    re.IGNORECASE,
)
TEMPORAL_SCORES = {"improved": 1, "worsened": -1}
MEASUREMENT_PATTERN = re.compile(
    r"(?P<name>[A-Za-z][A-Za-z0-9 \-]*?)[ \t]+(?:is|was|were|measures?|measured(?:[ \t]+at)?)[ \t]+"
    r"(?P<value>\d+(?:\.\d+)?)(?!\d|\.\d|\s*/\s*\d)[ \t]*(?P<unit>%|[A-Za-zµ][A-Za-z0-9µ/%^.]*)",
    re.IGNORECASE,
)
SECTION_LABEL = re.compile(
    r"^\s*(?:final[ \t]+|clinical[ \t]+|provisional[ \t]+)?"
    r"(?P<label>diagnosis|diagnoses|impressions?|assessment|dx|recommendations?|advice|plan)[ \t]*:[ \t]*(?P<rest>.*?)\s*$",
    re.IGNORECASE,
)
HEADING_LINE = re.compile(r"^\s*[A-Za-z][A-Za-z /&]{0,40}:\s*$")
LIST_MARKER = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s*")
RECOMMENDATION_LABELS = {"recommendation", "recommendations", "advice", "plan"}

# Structured documents
JSON_LIKE_FIELD = re.compile(r'"(?P<key>[^"]+)":\s*"?(?P<value>[^",}\]\n]+)"?')
LEADING_NUMBER = re.compile(r"^\s*(-?\d+(?:\.\d+)?)")
TRAILING_UNIT = re.compile(r"[A-Za-zµ/%][A-Za-z0-9µ/%]*$")


class ExtractionBuffer:
    """Accumulates extracted fields and their evidence for one document."""

    def __init__(self):
        self.data = ExtractedMedicalData()
        self.findings: List[Finding] = []
        self.medications: List[MedicationMention] = []
        self.traceability: List[TraceabilityEntry] = []
        self.vitals: Dict[str, Any] = {}

    def add_finding(self, text: str, kind: FindingKind, location: str, confidence: float, **extra) -> Optional[Finding]:
        text = text.strip()
        if not text:
            return None
        finding = Finding(text=text, kind=kind, source_location=location, confidence=confidence, **extra)
        self.findings.append(finding)
        return finding

    def add_lab(
        self,
        parameter: str,
        value: float,
        unit: str,
        normal_range: Optional[str],
        span: str,
        location: str,
        confidence: float,
        flag: Optional[str] = None,
    ) -> LabValue:
        """Record a numeric lab value, its test-result view and the matching finding."""
        parameter = parameter.strip()
        definition = lookup_parameter(parameter)
        if not normal_range:
            normal_range = definition.normal_range if definition else NOT_AVAILABLE

        status = lab_status(value, normal_range)
        flagged = is_out_of_range(value, normal_range)
        display_status = result_status(value, normal_range)
        # Report flags count only when there is no usable range
        if flag and parse_range(normal_range) is None:
            flagged = True
            status = LabStatus.CRITICAL if flag == "critical" else LabStatus.ABNORMAL
            display_status = flag

        lab = LabValue(
            parameter=parameter,
            value=value,
            unit=unit,
            normal_range=normal_range,
            status=status,
            flagged=flagged,
        )
        self.data.lab_values.append(lab)
        self.data.test_results.append(
            TestResult(
                test_name=parameter,
                value=value,
                unit=unit or None,
                reference_range=normal_range,
                status=display_status,
                category=definition.category if definition else "general",
            )
        )
        self.add_finding(
            span,
            FindingKind.LAB_VALUE,
            location,
            confidence,
            measurement=Measurement(value=value, unit=unit, context=parameter),
        )
        return lab

    def add_medication(
        self,
        name: str,
        dose: Optional[str],
        frequency: str,
        duration: Optional[str],
        span: str,
        location: str,
        confidence: float,
        indication: Optional[str] = None,
    ) -> None:
        self.data.medications.append(
            Medication(
                name=name,
                dosage=dose or "as prescribed",
                frequency=frequency,
                duration=duration,
                indication=indication,
            )
        )
        self.medications.append(
            MedicationMention(
                name=name,
                dose=dose,
                context=indication or "prescribed medication",
                source_location=location,
                confidence=confidence,
            )
        )
        self.add_finding(span, FindingKind.MEDICATION, location, confidence)

    def add_trace(self, claim: str, source: str, confidence: float, database: str, reference: str,
                  location: Optional[str] = None) -> None:
        self.traceability.append(
            TraceabilityEntry(
                claim=claim,
                source=source,
                confidence=confidence,
                database=database,
                reference=reference,
                source_location=location,
            )
        )

    def record_vitals(self, line: str, location: str) -> bool:
        """Pick vital signs out of a line. Returns True when the line held any."""
        found = False

        match = BP_PATTERN.search(line)
        if match:
            found = True
            if "blood_pressure" not in self.vitals:
                self.vitals["blood_pressure"] = (int(match.group("systolic")), int(match.group("diastolic")))
            self.add_finding(match.group(0), FindingKind.VITAL_SIGN, location, VITAL_SIGN_CONFIDENCE)

        simple_vitals = [
            ("heart_rate", HEART_RATE_PATTERN),
            ("temperature", TEMPERATURE_PATTERN),
            ("weight", WEIGHT_PATTERN),
            ("height", HEIGHT_PATTERN),
            ("bmi", BMI_PATTERN),
        ]
        for key, pattern in simple_vitals:
            match = pattern.search(line)
            if not match:
                continue
            found = True
            if key not in self.vitals:
                self.vitals[key] = _vital_value(key, match)
            self.add_finding(match.group(0), FindingKind.VITAL_SIGN, location, VITAL_SIGN_CONFIDENCE)

        return found

    def build_vital_signs(self) -> Optional[VitalSigns]:
        if not self.vitals:
            return None

        vitals = VitalSigns(
            heart_rate=self.vitals.get("heart_rate"),
            temperature=self.vitals.get("temperature"),
            weight=self.vitals.get("weight"),
            height=self.vitals.get("height"),
            bmi=self.vitals.get("bmi"),
        )
        if "blood_pressure" in self.vitals:
            systolic, diastolic = self.vitals["blood_pressure"]
            vitals.blood_pressure = BloodPressure(
                systolic=systolic,
                diastolic=diastolic,
                status=blood_pressure_status(systolic, diastolic),
            )
        if vitals.bmi is None and vitals.weight and vitals.height and vitals.height > 3:
            vitals.bmi = round(vitals.weight / (vitals.height / 100) ** 2, 1)
        return vitals

    def to_result(self, method: ParsingMethod, confidence: float, metadata: SourceMetadata) -> OmniExtractionResult:
        self.data.vital_signs = self.build_vital_signs()
        return OmniExtractionResult(
            extracted_data=self.data,
            confidence=confidence,
            parsing_method=method,
            source_metadata=metadata,
            traceability=self.traceability,
            findings=self.findings,
            medications=self.medications,
        )


def _vital_value(key: str, match: re.Match) -> float:
    value = float(match.group("value"))
    if key == "temperature" and (match.group("scale") or "").upper() == "C":
        # Store Fahrenheit
        return round(value * 9 / 5 + 32, 1)
    if key == "weight" and (match.group("unit") or "").lower().startswith("lb"):
        return round(value * 0.453592, 1)
    if key == "height":
        unit = (match.group("unit") or "").lower()
        if unit == "m" or (not unit and value < 3):
            return round(value * 100, 1)
        if unit == "in":
            return round(value * 2.54, 1)
    return value


def blood_pressure_status(systolic: int, diastolic: int) -> str:
    if systolic >= 140 or diastolic >= 90:
        return "stage_2_hypertension"
    if systolic >= 130 or diastolic >= 80:
        return "stage_1_hypertension"
    if systolic >= 120:
        return "elevated"
    return "normal"


def iter_lines(text: str):
    """Yield (line number, line) pairs, 1-based, skipping blank lines."""
    for index, line in enumerate(text.splitlines(), start=1):
        if line.strip():
            yield index, line


def is_metadata_label(name: str) -> bool:
    normalized = normalize_parameter_name(name)
    return normalized in METADATA_LABELS or "date" in normalized


def _flag_in(text: str) -> Optional[str]:
    match = FLAG_WORD.search(text or "")
    if not match:
        return None
    return FLAG_WORDS.get((match.group(1) or "*").upper())


def extract_report_metadata(text: str, data: ExtractedMedicalData) -> None:
    """Fill report date, doctor and hospital when the text names them."""
    match = REPORT_DATE_PATTERN.search(text)
    if match:
        data.report_date = match.group("date").strip()

    match = DOCTOR_LABEL_PATTERN.search(text) or DOCTOR_TITLE_PATTERN.search(text)
    if match:
        name = match.group("name").strip()
        data.doctor_name = name if name.lower().startswith("dr") else f"Dr. {name}"

    for line_no, line in iter_lines(text):
        match = HOSPITAL_LABEL_PATTERN.match(line)
        if match:
            data.hospital_name = match.group("name")
            return
    for line_no, line in list(iter_lines(text))[:5]:
        if HOSPITAL_HEADER_PATTERN.search(line) and ":" not in line:
            data.hospital_name = line.strip()
            return


# ----------------------------------------------------------------------------
# Tabular
# ----------------------------------------------------------------------------

def _split_unit_and_range(rest: str) -> Tuple[str, Optional[str]]:
    """Separate the unit and reference range that follow a value, in either order."""
    range_match = RANGE_TEXT.search(rest)
    normal_range = range_match.group(0).strip() if range_match else None
    remainder = rest
    if range_match:
        remainder = rest[:range_match.start()] + " " + rest[range_match.end():]
    unit_match = KNOWN_UNIT.search(remainder)
    unit = unit_match.group(0) if unit_match else ""
    return unit, normal_range


def _parse_pipe_row(line: str) -> Optional[Tuple[str, float, str, Optional[str], Optional[str]]]:
    cells = [cell.strip() for cell in line.strip().strip("|").split("|")]
    if len(cells) < 2 or not cells[0] or not cells[0][0].isalpha():
        return None
    value_match = PIPE_VALUE.match(cells[1])
    if not value_match:
        return None

    unit, normal_range = "", None
    for cell in cells[2:]:
        if not cell:
            continue
        if normal_range is None and RANGE_TEXT.fullmatch(cell.strip()):
            normal_range = cell.strip()
        elif not unit:
            unit = cell
    flag = FLAG_WORDS.get((value_match.group(2) or "").upper())
    return cells[0], float(value_match.group(1)), unit, normal_range, flag


def _parse_tabular_line(line: str) -> Optional[Tuple[str, float, str, Optional[str], Optional[str], str]]:
    """Return (parameter, value, unit, range, flag, span) for the first lab on a line."""
    if line.count("|") >= 2:
        row = _parse_pipe_row(line)
        if row:
            return (*row, line.strip())
        return None

    match = COLON_LAB.match(line)
    if match:
        rest = line[match.end():]
        unit = (match.group("unit") or "").rstrip(".")
        flag = None
        if unit.upper() in FLAG_WORDS:
            flag, unit = FLAG_WORDS[unit.upper()], ""
        range_match = RANGE_TEXT.search(rest)
        normal_range = range_match.group(0).strip() if range_match else None
        flag = flag or _flag_in(RANGE_TEXT.sub(" ", KNOWN_UNIT.sub(" ", rest)))
        return match.group("name"), float(match.group("value")), unit, normal_range, flag, line.strip()

    match = COLUMNAR_LAB.match(line)
    if match:
        rest = match.group("rest")
        unit, normal_range = _split_unit_and_range(rest)
        if not unit and normal_range is None:
            return None
        flag = _flag_in(RANGE_TEXT.sub(" ", KNOWN_UNIT.sub(" ", rest)))
        return match.group("name"), float(match.group("value")), unit, normal_range, flag, line.strip()

    return None


def parse_tabular(text: str) -> OmniExtractionResult:
    """Extract lab rows from tabular lab reports (colon, columnar and pipe layouts)."""
    buffer = ExtractionBuffer()

    for line_no, line in iter_lines(text):
        location = f"line {line_no}"
        if buffer.record_vitals(line, location):
            continue

        parsed = _parse_tabular_line(line)
        if parsed is None:
            continue
        parameter, value, unit, normal_range, flag, span = parsed
        if is_metadata_label(parameter):
            continue
        buffer.add_lab(parameter, value, unit, normal_range, span, location, TABULAR_CONFIDENCE, flag=flag)

    # Link to LOINC codes
    for lab in buffer.data.lab_values:
        definition = lookup_parameter(lab.parameter)
        if definition and definition.loinc:
            buffer.add_trace(
                claim=f"{lab.parameter} mapped to LOINC {definition.loinc}",
                source=f"Lab vocabulary entry '{definition.id.value}'",
                confidence=STRUCTURED_FIELD_CONFIDENCE,
                database="LOINC",
                reference=definition.loinc,
            )

    extract_report_metadata(text, buffer.data)
    buffer.add_trace(
        claim="Tabular lab data extraction with LOINC code mapping",
        source="Line-based lab row patterns",
        confidence=TABULAR_CONFIDENCE,
        database="LOINC",
        reference="vitalis_tabular_parser",
    )
    metadata = SourceMetadata(
        layout="structured_lab_table",
        quality="high",
        medical_specialty="pathology",
        document_type="lab_report",
    )
    return buffer.to_result(ParsingMethod.TABULAR, TABULAR_CONFIDENCE, metadata)


# ----------------------------------------------------------------------------
# Handwritten
# ----------------------------------------------------------------------------

def _clean_medication_name(raw: str) -> str:
    words = []
    for word in raw.split():
        if word.lower() in MEDICATION_NAME_STOPWORDS:
            break
        words.append(word)
    return " ".join(words)


def parse_handwritten(text: str) -> OmniExtractionResult:
    """Extract medications, labs, vitals, complaints and diagnoses from handwritten notes."""
    buffer = ExtractionBuffer()

    for line_no, line in iter_lines(text):
        location = f"line {line_no}"
        has_vitals = buffer.record_vitals(line, location)

        medication_spans = []
        for match in MEDICATION_PATTERN.finditer(line):
            name = _clean_medication_name(match.group("name"))
            if not name:
                continue
            dose = None
            if match.group("dose"):
                dose = f"{match.group('dose')}{match.group('dose_unit').lower()}"
            tail = line[match.start():]
            frequency_match = FREQUENCY_PATTERN.search(tail)
            duration_match = DURATION_PATTERN.search(tail)
            buffer.add_medication(
                name=name,
                dose=dose,
                frequency=frequency_match.group(0) if frequency_match else "as prescribed",
                duration=f"{duration_match.group('count')} {duration_match.group('unit')}" if duration_match else None,
                span=match.group(0),
                location=location,
                confidence=HANDWRITTEN_MEDICATION_CONFIDENCE,
            )
            medication_spans.append((match.start(), match.end()))

        for match in COMPLAINT_PATTERN.finditer(line):
            buffer.add_finding(match.group(0), FindingKind.COMPLAINT, location, HANDWRITTEN_LAB_CONFIDENCE)

        for match in INLINE_DIAGNOSIS_PATTERN.finditer(line):
            diagnosis = match.group("text").strip()
            if diagnosis:
                buffer.data.diagnoses.append(diagnosis)
                buffer.add_finding(diagnosis, FindingKind.DIAGNOSIS, location, HANDWRITTEN_LAB_CONFIDENCE)

        if has_vitals:
            continue
        for match in HANDWRITTEN_LAB_PATTERN.finditer(line):
            if any(start <= match.start() < end for start, end in medication_spans):
                continue
            parameter = match.group("name").strip()
            if not parameter or is_metadata_label(parameter):
                continue
            buffer.add_lab(
                parameter,
                float(match.group("value")),
                match.group("unit"),
                None,
                match.group(0),
                location,
                HANDWRITTEN_LAB_CONFIDENCE,
            )

    extract_report_metadata(text, buffer.data)
    buffer.add_trace(
        claim="Handwritten medical text extraction with discounted confidence",
        source="Prescription and note patterns",
        confidence=HANDWRITTEN_CONFIDENCE,
        database="Medical pattern rules",
        reference="vitalis_handwriting_parser",
    )
    metadata = SourceMetadata(
        layout="handwritten_prescription",
        quality="low",
        medical_specialty="general",
        document_type="handwritten_notes",
    )
    return buffer.to_result(ParsingMethod.HANDWRITTEN, HANDWRITTEN_CONFIDENCE, metadata)


# ----------------------------------------------------------------------------
# Narrative
# ----------------------------------------------------------------------------

def _resolve_trailing_parameter(name: str) -> Optional[Tuple[LabParameter, str]]:
    """Find the longest trailing run of words in `name` that names a known parameter."""
    words = name.split()
    for start in range(len(words)):
        candidate = " ".join(words[start:])
        definition = lookup_parameter(candidate)
        if definition:
            return definition, candidate
    return None


def _collect_sections(lines: List[Tuple[int, str]], buffer: ExtractionBuffer) -> None:
    """Pull diagnoses and recommendations from labelled sections (same or following lines)."""
    index = 0
    while index < len(lines):
        line_no, line = lines[index]
        match = SECTION_LABEL.match(line)
        index += 1
        if not match:
            continue

        label = match.group("label").lower()
        target = buffer.data.recommendations if label in RECOMMENDATION_LABELS else buffer.data.diagnoses
        entries: List[Tuple[int, str]] = []
        if match.group("rest"):
            entries.append((line_no, match.group("rest")))
        else:
            while index < len(lines):
                next_no, next_line = lines[index]
                if next_no != line_no + 1 + len(entries) or SECTION_LABEL.match(next_line) or HEADING_LINE.match(next_line):
                    break
                entries.append((next_no, next_line))
                index += 1

        for entry_no, entry in entries:
            cleaned = LIST_MARKER.sub("", entry).strip().rstrip(".").strip()
            if not cleaned:
                continue
            target.append(cleaned)
            if target is buffer.data.diagnoses:
                buffer.add_finding(cleaned, FindingKind.DIAGNOSIS, f"line {entry_no}", NARRATIVE_CONFIDENCE)


def parse_narrative(text: str) -> OmniExtractionResult:
    """Extract polarity-tagged findings, trends, measurements and diagnoses from clinical prose."""
    buffer = ExtractionBuffer()
    lines = list(iter_lines(text))

    for line_no, line in lines:
        location = f"line {line_no}"
        buffer.record_vitals(line, location)

        for match in NEGATION_PATTERN.finditer(line):
            buffer.add_finding(
                match.group(0),
                FindingKind.NEGATION,
                location,
                NEGATION_CONFIDENCE,
                polarity=Polarity.NEGATIVE,
            )

        for match in POSITIVE_PATTERN.finditer(line):
            if NEGATION_PREFIX.search(line[:match.start()]):
                continue
            buffer.add_finding(
                match.group(0),
                FindingKind.POSITIVE_MENTION,
                location,
                POSITIVE_MENTION_CONFIDENCE,
                polarity=Polarity.POSITIVE,
            )

        for match in TEMPORAL_PATTERN.finditer(line):
            buffer.add_finding(
                match.group(0),
                FindingKind.TEMPORAL,
                location,
                TEMPORAL_CONFIDENCE,
                trend_score=TEMPORAL_SCORES.get(match.group("word").lower(), 0),
            )

        for match in MEASUREMENT_PATTERN.finditer(line):
            value = float(match.group("value"))
            unit = match.group("unit").rstrip(".")
            name = match.group("name").strip()
            resolved = _resolve_trailing_parameter(name)
            if resolved:
                definition, parameter = resolved
                buffer.add_lab(parameter, value, unit, None, match.group(0), location, MEASUREMENT_CONFIDENCE)
            else:
                buffer.add_finding(
                    match.group(0),
                    FindingKind.MEASUREMENT,
                    location,
                    MEASUREMENT_CONFIDENCE,
                    measurement=Measurement(value=value, unit=unit, context=name),
                )

    _collect_sections(lines, buffer)
    extract_report_metadata(text, buffer.data)
    buffer.add_trace(
        claim="Narrative clinical text analysis with negation and temporal cues",
        source="Clinical phrase patterns",
        confidence=NARRATIVE_CONFIDENCE,
        database="Clinical terminology rules",
        reference="vitalis_narrative_parser",
    )
    metadata = SourceMetadata(
        layout="clinical_narrative",
        quality="medium",
        medical_specialty="general",
        document_type="clinical_note",
    )
    return buffer.to_result(ParsingMethod.NARRATIVE, NARRATIVE_CONFIDENCE, metadata)


# ----------------------------------------------------------------------------
# Structured
# ----------------------------------------------------------------------------

def _structured_value(raw: Any) -> Any:
    if isinstance(raw, bool):
        return str(raw).lower()
    if isinstance(raw, (int, float)):
        return float(raw)
    if raw is None:
        return ""
    return str(raw)


def _first(entry: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if entry.get(key) not in (None, ""):
            return entry[key]
    return None


def _structured_lab(entry: Dict[str, Any], index: int, buffer: ExtractionBuffer) -> None:
    parameter = str(_first(entry, "name", "parameter", "test", "testName") or "Unknown")
    value = _structured_value(entry.get("value"))
    unit = str(entry.get("unit") or "")
    normal_range = str(_first(entry, "normalRange", "normal_range", "referenceRange", "range") or "N/A")
    status = entry.get("status")
    if not isinstance(status, str) or status not in {s.value for s in LabStatus}:
        status = LabStatus.NORMAL
    flagged = entry.get("flagged") is True
    location = f"json:labResults[{index}]"

    buffer.data.lab_values.append(
        LabValue(parameter=parameter, value=value, unit=unit, normal_range=normal_range, status=status, flagged=flagged)
    )
    definition = lookup_parameter(parameter)
    buffer.data.test_results.append(
        TestResult(
            test_name=parameter,
            value=value,
            unit=unit or None,
            reference_range=normal_range,
            status=result_status(value, normal_range),
            category=definition.category if definition else "general",
        )
    )
    measurement = Measurement(value=value, unit=unit, context=parameter) if isinstance(value, float) else None
    buffer.add_finding(parameter, FindingKind.STRUCTURED_FIELD, location, STRUCTURED_FIELD_CONFIDENCE,
                       measurement=measurement)
    if definition and definition.loinc:
        buffer.add_trace(
            claim=f"{parameter} mapped to LOINC {definition.loinc}",
            source=f"Lab vocabulary entry '{definition.id.value}'",
            confidence=STRUCTURED_FIELD_CONFIDENCE,
            database="LOINC",
            reference=definition.loinc,
            location=location,
        )


def _structured_medication(entry: Dict[str, Any], index: int, buffer: ExtractionBuffer) -> None:
    name = str(_first(entry, "name", "medication", "drug") or "").strip()
    if not name:
        return
    dose = _first(entry, "dose", "dosage")
    buffer.add_medication(
        name=name,
        dose=str(dose) if dose is not None else None,
        frequency=str(entry.get("frequency") or "as prescribed"),
        duration=str(entry["duration"]) if entry.get("duration") else None,
        span=name,
        location=f"json:medications[{index}]",
        confidence=STRUCTURED_FIELD_CONFIDENCE,
        indication=str(entry["indication"]) if entry.get("indication") else None,
    )


def _parse_structured_json(payload: Any, buffer: ExtractionBuffer) -> None:
    if isinstance(payload, list):
        payload = {"labResults": payload}
    if not isinstance(payload, dict):
        return

    lab_results = _first(payload, "labResults", "lab_results", "labValues")
    if isinstance(lab_results, list):
        for index, entry in enumerate(lab_results):
            if isinstance(entry, dict):
                _structured_lab(entry, index, buffer)
            else:
                logger.warning(f"Skipping non-object labResults[{index}]: {entry!r}")

    medications = payload.get("medications")
    if isinstance(medications, list):
        for index, entry in enumerate(medications):
            if isinstance(entry, dict):
                _structured_medication(entry, index, buffer)

    diagnoses = payload.get("diagnoses")
    if isinstance(diagnoses, list):
        for diagnosis in diagnoses:
            if isinstance(diagnosis, str) and diagnosis.strip():
                buffer.data.diagnoses.append(diagnosis.strip())
                buffer.add_finding(diagnosis, FindingKind.DIAGNOSIS, "json:diagnoses", STRUCTURED_FIELD_CONFIDENCE)

    vital_signs = _first(payload, "vitalSigns", "vital_signs")
    if isinstance(vital_signs, dict):
        try:
            buffer.data.vital_signs = VitalSigns.model_validate(vital_signs)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid vitalSigns block: {str(e)}")

    for field, keys in (
        ("report_date", ("reportDate", "report_date", "date")),
        ("doctor_name", ("doctorName", "doctor_name", "doctor")),
        ("hospital_name", ("hospitalName", "hospital_name", "hospital")),
    ):
        value = _first(payload, *keys)
        if isinstance(value, str):
            setattr(buffer.data, field, value)


def _parse_structured_fallback(text: str, buffer: ExtractionBuffer) -> None:
    """Scan semi-structured text for `"key": value` pairs whose key is a known medical term."""
    for match in JSON_LIKE_FIELD.finditer(text):
        key = match.group("key").strip()
        if not any(term in key.lower() for term in STRUCTURED_TERM_ALLOWLIST):
            continue
        raw_value = match.group("value").strip()
        location = f'field "{key}"'
        number = LEADING_NUMBER.match(raw_value)
        if number:
            unit_match = TRAILING_UNIT.search(raw_value)
            buffer.add_lab(
                key,
                float(number.group(1)),
                unit_match.group(0) if unit_match else "",
                None,
                match.group(0),
                location,
                STRUCTURED_FALLBACK_CONFIDENCE,
            )
        else:
            buffer.add_finding(match.group(0), FindingKind.STRUCTURED_FIELD, location, STRUCTURED_FALLBACK_CONFIDENCE)


def parse_structured(text: str) -> OmniExtractionResult:
    """Parse JSON reports, falling back to a key/value scan when the JSON is malformed."""
    buffer = ExtractionBuffer()
    try:
        payload = json.loads(text)
        _parse_structured_json(payload, buffer)
        source = "Native JSON parser with medical field validation"
        layout = "structured_json"
    except json.JSONDecodeError as e:
        logger.info(f"Structured input is not valid JSON ({str(e)}); scanning key/value pairs")
        _parse_structured_fallback(text, buffer)
        source = "Key/value scan filtered by medical term allowlist"
        layout = "semi_structured"

    buffer.add_trace(
        claim="Structured medical data parsing",
        source=source,
        confidence=STRUCTURED_CONFIDENCE,
        database="Structured data parser",
        reference="vitalis_structured_parser",
    )
    metadata = SourceMetadata(
        layout=layout,
        quality="high",
        medical_specialty="general",
        document_type="structured_data",
    )
    return buffer.to_result(ParsingMethod.STRUCTURED, STRUCTURED_CONFIDENCE, metadata)


# ----------------------------------------------------------------------------
# Scan
# ----------------------------------------------------------------------------

def parse_scan(text: str) -> OmniExtractionResult:
    """Narrative parsing with a flat confidence discount for OCR'd text."""
    result = parse_narrative(text)
    result.confidence = result.confidence * SCAN_CONFIDENCE_FACTOR
    result.parsing_method = ParsingMethod.SCAN
    result.source_metadata.layout = "scanned_document"
    result.source_metadata.quality = "ocr"
    result.source_metadata.document_type = "scanned_document"
    return result


STRATEGIES: Dict[str, Callable[[str], OmniExtractionResult]] = {
    ParsingMethod.TABULAR.value: parse_tabular,
    ParsingMethod.HANDWRITTEN.value: parse_handwritten,
    ParsingMethod.NARRATIVE.value: parse_narrative,
    ParsingMethod.STRUCTURED.value: parse_structured,
    ParsingMethod.SCAN.value: parse_scan,
}


def extract(text: str, parsing_method: ParsingMethod) -> OmniExtractionResult:
    """Run the extraction strategy for `parsing_method` over `text`."""
    method = ParsingMethod(parsing_method)
    logger.debug(f"Running {method.value} extraction over {len(text or '')} characters")
    return STRATEGIES[method.value](text or "")
