"""Canned answers for the offline rule-based responder.

Three tables are consulted in order: navigation intents (which also tell the
client which page to open), clinical rules, then small talk. A rule is a
list of keyword groups and matches when the message contains at least one
keyword from every group. Keywords match at the start of a word, so
"prescription" also matches "prescriptions"; small-talk keywords must match
a whole word.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Sequence, Tuple

Groups = Sequence[Sequence[str]]

DASHBOARD = "dashboard"
PATIENTS = "patients"
PATIENT_DETAILS = "patientDetails"
PRESCRIPTIONS = "prescriptions"
LAB_REPORTS = "labReports"
VITALS_ANALYTICS = "vitalsAnalytics"
APPOINTMENTS = "appointments"

NAVIGATION_ANSWERS = {
    DASHBOARD: (
        "You can access the Dashboard from the 'Dashboard' link in the sidebar. "
        "It gives an overview of your patients, appointments and key metrics."
    ),
    PATIENTS: (
        "The Patients section lets you view and manage all your patients. Open it "
        "from the sidebar by clicking 'Patients'."
    ),
    PATIENT_DETAILS: (
        "Patient Details shows a patient's medical history, prescriptions, lab "
        "reports and vitals. Click any patient's name in the Patients section to "
        "open it."
    ),
    PRESCRIPTIONS: (
        "Prescriptions are managed from the Patient Details page. Select a patient, "
        "open the 'Prescriptions' tab and use the 'New Prescription' button."
    ),
    LAB_REPORTS: (
        "Lab reports are managed from the Patient Details page. Select a patient, "
        "open the 'Lab Reports' tab and use the 'Add Lab Report' button."
    ),
    VITALS_ANALYTICS: (
        "Vitals Analytics compares a patient's vital signs across visits with "
        "interactive graphs. Open it from the Patient Details page through the "
        "'Vitals Analytics' tab."
    ),
    APPOINTMENTS: (
        "Appointments are managed from the Appointments section in the sidebar, "
        "where you can schedule, view and update patient appointments."
    ),
}

_FIND_QUESTION: Groups = (("how",), ("find",))
_DIRECT_REQUEST: Groups = (("go to", "navigate to", "take me to", "show me", "open"),)

# Patient details is checked before patients, since "patient details" also
# starts with "patient".
NAVIGATION_INTENTS: Sequence[Tuple[Groups, str]] = (
    ((("dashboard", "home", "main page", "overview"),), DASHBOARD),
    ((("patient details", "patient profile", "patient information"),), PATIENT_DETAILS),
    ((("patient", "all patients"),), PATIENTS),
    ((("prescription", "medicine", "drug", "medication"),), PRESCRIPTIONS),
    ((("lab", "test", "report", "laboratory"),), LAB_REPORTS),
    (
        (("vital", "analytics", "graph", "chart", "trend", "blood pressure", "heart rate"),),
        VITALS_ANALYTICS,
    ),
    ((("appointment", "schedule", "booking", "calendar"),), APPOINTMENTS),
)

CHILD_HEART_RATE = (
    "Normal heart rates for children vary by age: newborns 100-160 bpm, infants "
    "80-150 bpm, toddlers 80-130 bpm, preschoolers 80-120 bpm, school-age "
    "children 70-110 bpm and adolescents 60-100 bpm. Rates consistently outside "
    "these ranges should be evaluated by a pediatrician."
)

COVID_TREATMENT = (
    "COVID-19 treatment depends on severity. High-risk mild to moderate cases may "
    "receive nirmatrelvir/ritonavir or remdesivir within 5-7 days of symptom "
    "onset. Hospitalized patients may need remdesivir, dexamethasone when on "
    "oxygen, baricitinib or tocilizumab for rapid respiratory decline, and "
    "thromboprophylaxis. Supportive care includes oxygen therapy and prone "
    "positioning."
)

_PAIN = ("pain", "ache", "hurt", "body pain", "headache")
_MEDICATION = ("medication", "medicine", "drug")

CLINICAL_RULES: Sequence[Tuple[Groups, str]] = (
    (
        (_MEDICATION, _PAIN),
        "For pain management, commonly recommended options include NSAIDs such as "
        "ibuprofen or naproxen for inflammatory pain, acetaminophen for mild to "
        "moderate pain without significant inflammation, topical analgesics for "
        "localized pain and muscle relaxants for spasms. Consider age, "
        "comorbidities and potential drug interactions before recommending any of them.",
    ),
    (
        (("symptom", "signs"), ("hypertension", "high blood pressure")),
        "Hypertension is often asymptomatic and found during routine checks. When "
        "present, symptoms include headaches, shortness of breath, nosebleeds, "
        "dizziness, chest pain and visual changes. Regular blood pressure "
        "monitoring is essential for early detection.",
    ),
    (
        (("troponin",), ("elevated", "high", "interpret")),
        "Elevated troponin typically indicates myocardial injury. Normal values are "
        "below 0.04 ng/mL. Consider acute coronary syndrome with chest pain or ECG "
        "changes; other causes include myocarditis, pulmonary embolism, sepsis and "
        "renal failure. Serial measurements are more informative than a single value.",
    ),
    (
        (
            ("treatment", "manage", "therapy"),
            ("diabetes", "diabetic"),
            ("type 2", "type ii", "adult onset"),
        ),
        "Type 2 diabetes management usually starts with lifestyle modification and "
        "metformin, adding GLP-1 receptor agonists or SGLT2 inhibitors when "
        "cardiovascular or renal risk is present. Insulin may be needed when oral "
        "agents miss glycemic targets. Individualize HbA1c targets, typically "
        "below 7%, and review them every three to six months.",
    ),
    (
        (("side effect", "adverse effect", "reaction"), ("amoxicillin", "antibiotic")),
        "Common side effects of amoxicillin include diarrhea, nausea, vomiting and "
        "rash. Less common but serious effects include anaphylaxis and Clostridioides "
        "difficile associated diarrhea. Patients should complete the full course and "
        "report severe diarrhea, rash or signs of allergy.",
    ),
    (
        (("diagnose", "diagnosis", "detect", "identify"), ("pneumonia", "lung infection")),
        "Pneumonia is diagnosed from clinical findings (cough, fever, dyspnea, "
        "crackles) confirmed by chest X-ray. Supporting tests include WBC count, "
        "CRP or procalcitonin, sputum and blood cultures and pulse oximetry. "
        "CURB-65 or the Pneumonia Severity Index helps choose the treatment setting.",
    ),
    (
        (("difference", "distinguish", "between"), ("systolic",), ("diastolic",)),
        "Systolic pressure is the arterial pressure while the heart contracts; "
        "diastolic pressure is the pressure between beats. Normal adult readings "
        "are below 120/80 mmHg, and elevated systolic pressure is the stronger "
        "cardiovascular risk factor in older adults.",
    ),
    (
        (("normal", "range", "level"), ("blood glucose", "blood sugar", "glucose")),
        "Normal fasting plasma glucose is 70-99 mg/dL, below 140 mg/dL two hours "
        "after a meal, with HbA1c below 5.7%. Fasting 100-125 mg/dL or HbA1c "
        "5.7-6.4% indicates prediabetes; fasting of 126 mg/dL or more, or HbA1c of "
        "6.5% or more, indicates diabetes.",
    ),
    (
        (
            ("normal", "average", "typical"),
            ("heart rate", "pulse", "bpm", "beats"),
            ("children", "child", "kid", "pediatric"),
        ),
        CHILD_HEART_RATE,
    ),
    (
        (("normal", "average", "typical"), ("heart rate", "pulse", "bpm", "beats")),
        "The normal resting heart rate for adults is 60 to 100 beats per minute; "
        "well-conditioned athletes may rest near 40 bpm. Target exercise heart "
        "rate is typically 50-85% of the maximum (220 minus age).",
    ),
    (
        (("symptom", "signs", "indication"), ("covid", "coronavirus", "sars-cov-2")),
        "Common COVID-19 symptoms include fever or chills, cough, shortness of "
        "breath, fatigue, body aches, headache, new loss of taste or smell and sore "
        "throat, appearing 2-14 days after exposure. Trouble breathing, persistent "
        "chest pain, new confusion or bluish lips need immediate attention.",
    ),
    (
        (("treatment", "therapy", "medication", "cure"), ("covid", "coronavirus")),
        COVID_TREATMENT,
    ),
    (
        (
            (
                "take medication",
                "medication adherence",
                "follow prescription",
                "skip dose",
                "stop taking",
            ),
        ),
        "Medications should be taken as prescribed and not stopped or changed "
        "without consulting the prescriber. For patients struggling with adherence, "
        "consider pill organizers, reminders, simpler regimens and addressing cost "
        "or side effects, and document non-adherence in the patient record.",
    ),
    (
        (("headache", "migraine", "head pain"),),
        "Common headache types are tension headaches, migraines and cluster "
        "headaches. Migraines need abortive therapy such as triptans or NSAIDs and "
        "preventive medication for frequent episodes. Headache with fever, altered "
        "mental status or neurological deficits warrants urgent evaluation.",
    ),
    (
        (("fever", "high temperature", "febrile"),),
        "Fever (above 38°C/100.4°F) is an immune response to infection or "
        "inflammation. Identify the source from associated symptoms, manage with "
        "antipyretics and hydration, and evaluate urgently above 39.4°C/103°F, in "
        "immunocompromised patients or with neck stiffness or altered mental status.",
    ),
    (
        (("prescription", "prescribe"),),
        "To create a prescription, open the patient's profile and select 'New "
        "Prescription'. Search the medication, then set dosage, frequency and "
        "duration. Check the patient's allergies and current medications for "
        "interactions before saving.",
    ),
)

# (follow-up keywords, topic the previous turn must mention, answer)
FOLLOW_UPS: Sequence[Tuple[Sequence[str], str, str]] = (
    (("children", "child", "kids"), "heart rate", CHILD_HEART_RATE),
    (("treatment", "therapy", "medication"), "covid", COVID_TREATMENT),
)

GREETING_RESPONSE = (
    "Hello, doctor. I'm your MediTrack clinical assistant. How may I support "
    "your patient care activities today?"
)

FAREWELL_RESPONSE = (
    "Goodbye! Don't hesitate to reach out if you have more clinical questions."
)

SMALL_TALK: Sequence[Tuple[Sequence[str], str]] = (
    (("hello", "hi", "hey", "greetings", "good morning", "good afternoon"), GREETING_RESPONSE),
    (("bye", "goodbye", "see you", "farewell"), FAREWELL_RESPONSE),
)

DEFAULT_RESPONSE = (
    "I'm here to help with clinical information and patient management in "
    "MediTrack. Could you provide more details about what you need?"
)


@dataclass(frozen=True)
class RuleAnswer:
    content: str
    navigation_target: Optional[str] = None


@lru_cache(maxsize=None)
def _pattern(keyword: str, whole_word: bool) -> "re.Pattern[str]":
    suffix = r"\b" if whole_word else ""
    return re.compile(rf"\b{re.escape(keyword)}{suffix}")


def contains_any(text: str, keywords: Sequence[str], *, whole_word: bool = False) -> bool:
    return any(_pattern(keyword, whole_word).search(text) for keyword in keywords)


def matches(text: str, groups: Groups) -> bool:
    return all(contains_any(text, group) for group in groups)


def match_navigation(message: str) -> Optional[str]:
    """Target page for a "how do I find ..." or "take me to ..." request."""
    text = message.lower()
    if not (matches(text, _FIND_QUESTION) or matches(text, _DIRECT_REQUEST)):
        return None
    for groups, target in NAVIGATION_INTENTS:
        if matches(text, groups):
            return target
    return None


def match_rule(message: str, previous: Optional[str] = None) -> str:
    """Clinical or small-talk answer; `previous` is the turn before the message."""
    text = message.lower()
    for groups, response in CLINICAL_RULES:
        if matches(text, groups):
            return response
    if previous:
        earlier = previous.lower()
        for keywords, topic, response in FOLLOW_UPS:
            if contains_any(text, keywords) and topic in earlier:
                return response
    for keywords, response in SMALL_TALK:
        if contains_any(text, keywords, whole_word=True):
            return response
    return DEFAULT_RESPONSE


def answer(message: str, previous: Optional[str] = None) -> RuleAnswer:
    target = match_navigation(message)
    if target is not None:
        return RuleAnswer(NAVIGATION_ANSWERS[target], navigation_target=target)
    return RuleAnswer(match_rule(message, previous))
