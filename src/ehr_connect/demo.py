"""Fictitious patients served when the portal runs in demo mode.

These stand in for a live EHR so the portal can be shown end to end
without an OAuth connection. Every record is invented; none of it
describes a real person. The fixtures are already normalized and are
sorted newest first on the way out, so they go through the same snapshot and audit path as production data.
"""

from __future__ import annotations

from datetime import date

from ehr_connect.models import (
    Condition,
    DocumentRef,
    MedicationOrder,
    NormalizedBundle,
    Observation,
    Person,
)
from ehr_connect.normalizer import calculate_age, newest_first, summarize_documents

DEMO_PATIENT_PREFIX = "demo-patient-"

_ICD10 = "http://hl7.org/fhir/sid/icd-10-cm"


def _person(
    patient_id: str,
    first: str,
    last: str,
    gender: str,
    birth_date: str,
    mrn: str,
    email: str,
    phone: str | None = None,
    address: str | None = None,
) -> Person:
    return Person(
        id=patient_id,
        name=f"{first} {last}",
        first_name=first,
        last_name=last,
        gender=gender,
        birth_date=birth_date,
        mrn=mrn,
        phone=phone,
        email=email,
        address=address,
    )


def _lab(
    obs_id: str,
    code: str,
    display: str,
    value: str,
    unit: str | None,
    when: str,
    reference_range: str | None = None,
    interpretation: str | None = None,
    category: str = "laboratory",
) -> Observation:
    return Observation(
        id=obs_id,
        code=code,
        display=display,
        category=category,
        value=value,
        unit=unit,
        reference_range=reference_range,
        status="final",
        date=when,
        interpretation=interpretation,
    )


# ---------------------------------------------------------------------------
# demo-patient-1: Anish Polakala, neuro-oncology
# ---------------------------------------------------------------------------

_ANISH_NOTE = """NEURO-ONCOLOGY FOLLOW-UP
Patient: Anish Polakala    DOB: 08/15/1992    MRN: MRN001234
Date of visit: 11/18/2024
Provider: Dr. Sarah Mitchell, MD, Neuro-Oncology

CHIEF COMPLAINT:
Scheduled follow-up during adjuvant temozolomide for glioblastoma of the
right frontal lobe.

HISTORY OF PRESENT ILLNESS:
Mr. Polakala is a 32-year-old man with glioblastoma (WHO grade 4,
IDH-wildtype, MGMT promoter methylated) of the right frontal lobe. He
first presented on 02/20/2024 with two weeks of progressive morning
headaches and word-finding pauses. CT showed a 4.1 cm heterogeneous right
frontal mass with surrounding edema and 3 mm of midline shift. He
underwent right frontal craniotomy with gross total resection in March
2024, followed by six weeks of radiation (60 Gy in 30 fractions) with
concurrent daily temozolomide.

He is now on cycle 5 of adjuvant temozolomide, 280 mg (150 mg/m2) on days
1-5 of each 28-day cycle. He reports mild fatigue in the week after
dosing and nausea on dosing days that responds to ondansetron. He had one
brief focal seizure in early June, with left hand twitching for about a
minute and no loss of awareness. Levetiracetam was started at that time
and he has had no further events. No new headaches, weakness, numbness
or visual change. He is working part time from home.

CURRENT MEDICATIONS:
1. Temozolomide 280 mg PO daily x5 days every 28 days
2. Levetiracetam 750 mg PO twice daily
3. Dexamethasone 2 mg PO once daily with breakfast
4. Ondansetron 8 mg PO as needed for nausea

ALLERGIES: No known drug allergies.

REVIEW OF SYSTEMS:
Constitutional: Fatigue as above. Weight stable. No fevers or night sweats.
Neurological: No headache, weakness, gait change or speech difficulty.
Gastrointestinal: Nausea on dosing days only. No vomiting or diarrhea.
Psychiatric: Mood good. Sleeping well. Engaged with the brain tumor
support group.
Skin: No rash or easy bruising.

PHYSICAL EXAMINATION:
Vitals: BP 122/78, HR 72, RR 14, Temp 98.2 F, SpO2 99% on room air.
General: Well appearing, alert and fully oriented.
HEENT: Well-healed right frontal craniotomy incision without drainage.
Neurological:
  - Mental status: fluent speech, intact naming and repetition
  - Cranial nerves II-XII intact
  - Motor: 5/5 strength throughout, no pronator drift
  - Sensation intact to light touch
  - Reflexes 2+ and symmetric, toes downgoing
  - Finger-to-nose intact, gait steady
Cardiovascular: Regular rate and rhythm, no murmur.
Lungs: Clear to auscultation bilaterally.

DATA:
MRI brain with and without contrast (11/04/2024): stable postoperative
changes, no new nodular enhancement, decreasing FLAIR signal around the
resection cavity.
CBC (11/15/2024): WBC 4.2 (low), ANC 2.1, platelets 168. Counts are
adequate to proceed with the next cycle.

ASSESSMENT:
1. Glioblastoma, stable on surveillance MRI, no enhancing recurrence.
   Karnofsky performance status 90.
2. Perilesional cerebral edema, improved; dexamethasone taper continues.
3. Seizure disorder secondary to tumor, controlled on levetiracetam.
4. Mild leukopenia related to chemotherapy, not dose limiting.

PLAN:
- Continue temozolomide 150 mg/m2 days 1-5 of a 28-day cycle; cycle 6
  starts 11/25/2024 if ANC stays above 1.5.
- Continue dexamethasone 2 mg daily for two more weeks, then 1 mg daily.
- Continue levetiracetam 750 mg twice daily. Seizure precautions and
  state driving restrictions reviewed.
- Ondansetron 30 minutes before each temozolomide dose.
- CBC with differential before next cycle; MRI brain in 8 weeks.
- Call for fever over 100.4 F, new headache, seizure or new weakness.

FOLLOW-UP:
Return to neuro-oncology clinic in 4 weeks, on day 1 of cycle 6.

Electronically signed: Dr. Sarah Mitchell, MD, 11/18/2024"""

_ANISH_MRI = """MRI BRAIN WITH AND WITHOUT CONTRAST
Patient: Anish Polakala    MRN: MRN001234

FINDINGS: Postsurgical changes of the right frontal lobe. No new nodular
enhancement. Surrounding FLAIR signal is decreased compared with the prior
study, consistent with resolving edema. No midline shift.

IMPRESSION: Stable postoperative appearance without evidence of
recurrence."""

_ANISH = NormalizedBundle(
    patient=_person(
        "demo-patient-1", "Anish", "Polakala", "male", "1992-08-15", "MRN001234",
        "anish.polakala@example.com", "555-0100",
        "123 Commonwealth Ave, Boston, MA 02116",
    ),
    conditions=[
        Condition(
            id="demo-cond-1-3", code="G40.909", system=_ICD10,
            display="Seizure disorder secondary to brain tumor",
            clinical_status="active", verification_status="confirmed",
            category="Problem List", onset_date="2024-06-02",
        ),
        Condition(
            id="demo-cond-1-2", code="G93.6", system=_ICD10,
            display="Cerebral edema", clinical_status="active",
            verification_status="confirmed", category="Problem List",
            onset_date="2024-02-28",
        ),
        Condition(
            id="demo-cond-1-1", code="C71.1", system=_ICD10,
            display="Glioblastoma multiforme of frontal lobe",
            clinical_status="active", verification_status="confirmed",
            category="Problem List", severity="Severe", onset_date="2024-02-20",
            note="IDH-wildtype, MGMT promoter methylated",
        ),
    ],
    medications=[
        MedicationOrder(
            id="demo-med-1-1", name="Temozolomide 140 mg capsule", status="active",
            dosage="280 mg", frequency="Daily x5 days every 28 days", route="Oral",
            quantity=10, refills=2, prescribed_date="2024-10-01",
            instructions="Take on an empty stomach at bedtime",
        ),
        MedicationOrder(
            id="demo-med-1-2", name="Levetiracetam 750 mg tablet", status="active",
            dosage="750 mg", frequency="Twice daily", route="Oral", quantity=60,
            refills=5, prescribed_date="2024-06-02",
        ),
        MedicationOrder(
            id="demo-med-1-3", name="Dexamethasone 2 mg tablet", status="active",
            dosage="2 mg", frequency="Once daily", route="Oral", quantity=30,
            refills=1, prescribed_date="2024-05-15",
            instructions="Take with food in the morning",
        ),
        MedicationOrder(
            id="demo-med-1-4", name="Ondansetron 8 mg tablet", status="active",
            dosage="8 mg", frequency="As needed for nausea", route="Oral",
            quantity=20, refills=3, prescribed_date="2024-04-10",
        ),
    ],
    documents=[
        DocumentRef(
            id="demo-doc-1-1", type="Progress Note", category="Neuro-Oncology",
            date="2024-11-18", author="Dr. Sarah Mitchell",
            description="Neuro-oncology follow-up, temozolomide cycle 5",
            content=_ANISH_NOTE,
        ),
        DocumentRef(
            id="demo-doc-1-2", type="Imaging Report", category="Radiology",
            date="2024-11-04", author="Dr. James Okafor",
            description="MRI brain with and without contrast",
            content=_ANISH_MRI,
        ),
    ],
    observations=[
        _lab("demo-obs-1-1", "6690-2", "White blood cell count", "4.2", "10*3/uL",
             "2024-11-15", "4.5-11.0", "Low"),
        _lab("demo-obs-1-2", "777-3", "Platelet count", "168", "10*3/uL",
             "2024-11-15", "150-400"),
        _lab("demo-obs-1-3", "751-8", "Absolute neutrophil count", "2.1", "10*3/uL",
             "2024-11-15", "1.5-8.0"),
    ],
)


# ---------------------------------------------------------------------------
# demo-patient-2: Keisha Washington, pulmonology
# ---------------------------------------------------------------------------

_KEISHA_NOTE = """PULMONOLOGY CLINIC VISIT
Patient: Keisha Washington    DOB: 03/22/1985    MRN: MRN005678

Date of visit: 11/12/2024
Provider: Dr. Michael Torres, MD, Pulmonology

CHIEF COMPLAINT:
Routine asthma follow-up with spirometry.

HISTORY OF PRESENT ILLNESS:
Ms. Washington is a 39-year-old woman with moderate persistent asthma
since 2012 and seasonal allergic rhinitis, presenting for routine
follow-up. At her August visit she was using albuterol almost daily, and
fluticasone was increased to 110 mcg with montelukast added. Since then
she reports using her rescue inhaler two to three times a week, mostly
with exertion and during the spring pollen season. One nighttime
awakening in the last month. No emergency visits or oral steroid courses
since her last visit. Asthma Control Test score today is 18, up from 14.

Triggers are pollen, cold air and exercise. She does not smoke and there
are no smokers at home. She works as a middle school teacher and missed
no work days this quarter.

CURRENT MEDICATIONS:
1. Fluticasone 110 mcg inhaler, 2 puffs twice daily
2. Montelukast 10 mg PO at bedtime
3. Albuterol 90 mcg inhaler, 2 puffs every 4-6 hours as needed

ALLERGIES: Penicillin (hives).

REVIEW OF SYSTEMS:
Respiratory: Intermittent wheeze with exertion. No sputum or hemoptysis.
ENT: Nasal congestion in spring, currently mild.
Cardiovascular: No chest pain, palpitations or leg swelling.
Psychiatric: No mood changes on montelukast.

PHYSICAL EXAMINATION:
Vitals: BP 118/74, HR 76, RR 16, Temp 98.6 F, SpO2 98% on room air.
General: Comfortable, speaking in full sentences.
HEENT: Mildly pale, boggy nasal turbinates. No oral thrush.
Lungs: Faint end-expiratory wheeze at both bases, good air movement, no
accessory muscle use.
Cardiovascular: Regular rate and rhythm, no murmur.
Extremities: No edema.

PULMONARY FUNCTION:
FEV1 78% predicted, improved from 71% in August. FEV1/FVC 0.70.
Post-bronchodilator FEV1 improved by 14%. Peak flow 380 L/min, personal
best 420 L/min. Resting SpO2 98% on room air.
CBC (11/05/2024): eosinophils 0.45, upper end of normal.

ASSESSMENT:
1. Moderate persistent asthma, partially controlled. Better than in
   August but still using rescue inhaler more than twice a week.
2. Allergic rhinitis, seasonal, currently quiet.

PLAN:
- Continue fluticasone 110 mcg two puffs twice daily. Rinse mouth after.
- Continue montelukast 10 mg nightly.
- Albuterol as needed; review inhaler technique. Spacer provided.
- Written asthma action plan updated: green zone above 340 L/min, yellow
  zone 210-340 L/min, red zone below 210 L/min.
- Influenza vaccine given today.
- If control does not improve, step up to a combination inhaler.
- Repeat spirometry in 3 months.

FOLLOW-UP:
Return in 3 months, sooner for worsening symptoms.

Electronically signed: Dr. Michael Torres, MD, 11/12/2024"""

_KEISHA = NormalizedBundle(
    patient=_person(
        "demo-patient-2", "Keisha", "Washington", "female", "1985-03-22", "MRN005678",
        "keisha.washington@example.com", "555-0101",
        "456 Blue Hill Ave, Boston, MA 02121",
    ),
    conditions=[
        Condition(
            id="demo-cond-2-1", code="J45.30", system=_ICD10,
            display="Moderate persistent asthma, uncomplicated",
            clinical_status="active", verification_status="confirmed",
            category="Problem List", severity="Moderate", onset_date="2012-04-10",
        ),
        Condition(
            id="demo-cond-2-2", code="J30.2", system=_ICD10,
            display="Allergic rhinitis due to pollen", clinical_status="active",
            verification_status="confirmed", category="Problem List",
            onset_date="2010-05-01",
        ),
    ],
    medications=[
        MedicationOrder(
            id="demo-med-2-1", name="Fluticasone 110 mcg inhaler", status="active",
            dosage="2 puffs", frequency="Twice daily", route="Inhalation",
            quantity=1, refills=5, prescribed_date="2024-08-20",
            instructions="Rinse mouth after each use",
        ),
        MedicationOrder(
            id="demo-med-2-2", name="Montelukast 10 mg tablet", status="active",
            dosage="10 mg", frequency="Once daily at bedtime", route="Oral",
            quantity=30, refills=5, prescribed_date="2024-08-20",
        ),
        MedicationOrder(
            id="demo-med-2-3", name="Albuterol 90 mcg inhaler", status="active",
            dosage="2 puffs", frequency="Every 4-6 hours as needed", route="Inhalation",
            quantity=1, refills=3, prescribed_date="2024-03-12",
        ),
    ],
    documents=[
        DocumentRef(
            id="demo-doc-2-1", type="Progress Note", category="Pulmonology",
            date="2024-11-12", author="Dr. Michael Torres",
            description="Asthma follow-up with spirometry",
            content=_KEISHA_NOTE,
        ),
    ],
    observations=[
        _lab("demo-obs-2-1", "20150-9", "FEV1", "78", "% predicted", "2024-11-12",
             ">80", "Low", category="exam"),
        _lab("demo-obs-2-2", "19935-6", "Peak expiratory flow", "380", "L/min",
             "2024-11-12", category="exam"),
        _lab("demo-obs-2-3", "59408-5", "Oxygen saturation", "98", "%", "2024-11-12",
             "95-100", category="vital-signs"),
        _lab("demo-obs-2-4", "711-2", "Eosinophil count", "0.45", "10*3/uL",
             "2024-11-05", "0.0-0.5"),
    ],
)


# ---------------------------------------------------------------------------
# demo-patient-3: Mei Lin Zhang, behavioral health
# ---------------------------------------------------------------------------

_MEILIN_NOTE = """BEHAVIORAL HEALTH FOLLOW-UP
Patient: Mei Lin Zhang    DOB: 11/08/1990    MRN: MRN009876

Date of visit: 10/28/2024
Provider: Dr. Rachel Kim, MD, Psychiatry

CHIEF COMPLAINT:
Medication follow-up for anxiety.

SUBJECTIVE:
Ms. Zhang is a 34-year-old woman with generalized anxiety disorder seen
eight weeks after starting sertraline. She notes less constant worry and
fewer panic-like episodes at work. Sleep onset remains difficult, about
one hour most nights. GAD-7 today is 9, down from 15.

Symptoms began in spring 2024 after a promotion to a project lead role,
with persistent worry about deadlines, muscle tension and irritability.
She started sertraline 50 mg in early September. Mild nausea in the first
week has resolved. No sexual side effects. She attends weekly cognitive
behavioral therapy and practices breathing exercises most days. Caffeine
is down to one cup of coffee in the morning. Alcohol one glass of wine on
weekends. No drug use.

She denies depressed mood, hopelessness or thoughts of self-harm. No
history of mania. Thyroid function was normal in June.

CURRENT MEDICATIONS:
1. Sertraline 50 mg PO once daily (increasing today)

ALLERGIES: No known drug allergies.

MENTAL STATUS EXAMINATION:
Appearance: Well groomed, good eye contact.
Behavior: Calm and cooperative, mild fidgeting early in the visit.
Speech: Normal rate and volume.
Mood: "Better, but still tired."
Affect: Mildly anxious, reactive, congruent.
Thought process: Linear and goal directed.
Thought content: No suicidal or homicidal ideation. No delusions.
Perception: No hallucinations.
Cognition: Alert and oriented, attention intact.
Insight and judgment: Good.

SCREENING:
GAD-7: 9 (mild), was 15 on 09/02/2024.
PHQ-9: 4 (minimal).
Columbia suicide screen: negative.

ASSESSMENT:
1. Generalized anxiety disorder, improving. Partial response to
   sertraline 50 mg with good tolerance.
2. Insomnia related to anxiety. Sleep hygiene is good; the problem is
   sleep onset with racing thoughts.

PLAN:
- Increase sertraline to 100 mg daily.
- Hydroxyzine 25 mg at bedtime as needed for sleep. Counseled on
  morning drowsiness; avoid with alcohol.
- Continue weekly CBT sessions; add CBT-I sleep module.
- Crisis line number reviewed and provided.
- Repeat GAD-7 at next visit.
- Follow up in 6 weeks.

Electronically signed: Dr. Rachel Kim, MD, 10/28/2024"""

_MEILIN = NormalizedBundle(
    patient=_person(
        "demo-patient-3", "Mei Lin", "Zhang", "female", "1990-11-08", "MRN009876",
        "meilin.zhang@example.com", address="789 Beach St, Boston, MA 02111",
    ),
    conditions=[
        Condition(
            id="demo-cond-3-2", code="G47.00", system=_ICD10, display="Insomnia",
            clinical_status="active", verification_status="confirmed",
            category="Problem List", onset_date="2024-07-15",
        ),
        Condition(
            id="demo-cond-3-1", code="F41.1", system=_ICD10,
            display="Generalized anxiety disorder", clinical_status="active",
            verification_status="confirmed", category="Problem List",
            onset_date="2024-06-20",
        ),
    ],
    medications=[
        MedicationOrder(
            id="demo-med-3-1", name="Sertraline 100 mg tablet", status="active",
            dosage="100 mg", frequency="Once daily", route="Oral", quantity=30,
            refills=3, prescribed_date="2024-10-28",
        ),
        MedicationOrder(
            id="demo-med-3-2", name="Hydroxyzine 25 mg tablet", status="active",
            dosage="25 mg", frequency="At bedtime as needed", route="Oral",
            quantity=30, refills=1, prescribed_date="2024-10-28",
        ),
    ],
    documents=[
        DocumentRef(
            id="demo-doc-3-1", type="Progress Note", category="Behavioral Health",
            date="2024-10-28", author="Dr. Rachel Kim",
            description="Anxiety follow-up, sertraline titration",
            content=_MEILIN_NOTE,
        ),
    ],
    observations=[
        _lab("demo-obs-3-1", "70274-6", "GAD-7 total score", "9", "{score}",
             "2024-10-28", "0-4", category="survey"),
        _lab("demo-obs-3-2", "3016-3", "TSH", "2.1", "mIU/L", "2024-06-20",
             "0.4-4.0"),
    ],
)


# ---------------------------------------------------------------------------
# demo-patient-4: Jamal Thompson, orthopedics
# ---------------------------------------------------------------------------

_JAMAL_NOTE = """ORTHOPEDIC CLINIC NOTE
Patient: Jamal Thompson    DOB: 06/14/1978    MRN: MRN004321

Date of visit: 10/15/2024
Provider: Dr. David Chang, MD, Orthopedic Surgery
Referred by: Primary care, for bilateral knee pain

CHIEF COMPLAINT:
Bilateral knee pain, right worse than left.

HISTORY:
Mr. Thompson is a 46-year-old man with bilateral knee pain, right worse
than left, for two years. Pain is worse on stairs and after standing.
Morning stiffness lasts about 20 minutes. BMI 32.4.

He rates the pain 6/10 on an average day and 8/10 after a full shift. He
works as a warehouse supervisor and is on his feet most of the day. He
played high school football but recalls no specific knee injury or
surgery. Acetaminophen helped early on but no longer controls the pain.
No locking or giving way. Occasional swelling of the right knee after
long days. No night pain, fevers or other joint involvement.

PAST MEDICAL HISTORY:
Obesity since 2019. Hemoglobin A1c 5.6% in September 2024. No diabetes,
kidney disease or peptic ulcer disease.

CURRENT MEDICATIONS:
None before this visit.

ALLERGIES: No known drug allergies.

EXAMINATION:
Vitals: BP 132/84, HR 78, Weight 248 lbs, Height 6 ft 1 in.
Gait: Mildly antalgic on the right.
Right knee: Small effusion. Medial joint line tenderness. Crepitus with
motion. Range of motion 0-115 degrees. Stable to varus and valgus stress.
Negative Lachman and McMurray.
Left knee: No effusion. Mild medial joint line tenderness. Crepitus.
Range of motion 0-125 degrees. Ligaments stable.
Hips: Full painless range of motion bilaterally.
Neurovascular: Distal pulses intact, sensation intact.

IMAGING:
Standing radiographs show medial joint space narrowing with osteophytes,
Kellgren-Lawrence grade 3 right, grade 2 left. No fracture or loose body.
Mild varus alignment on the right.

ASSESSMENT:
1. Primary osteoarthritis of both knees, moderate on the right and mild
   to moderate on the left.
2. Obesity, contributing to joint load.

PLAN:
- Ibuprofen 600 mg three times daily with food, short course. Stop and
  call if stomach pain or dark stools. Kidney function at next labs.
- Glucosamine supplement per patient preference.
- Physical therapy referral for quadriceps strengthening, twice weekly
  for 8 weeks, with a home exercise program.
- Nutrition referral for weight management. Explained that each pound
  lost takes several pounds of load off the knees.
- Discussed workplace options such as anti-fatigue mats and seated tasks.
- Consider corticosteroid injection if no improvement in 6 weeks.
- Knee replacement is not indicated at this stage.

FOLLOW-UP:
Return in 6 weeks to review progress with physical therapy.

Electronically signed: Dr. David Chang, MD, 10/15/2024"""

_JAMAL = NormalizedBundle(
    patient=_person(
        "demo-patient-4", "Jamal", "Thompson", "male", "1978-06-14", "MRN004321",
        "jamal.thompson@example.com",
    ),
    conditions=[
        Condition(
            id="demo-cond-4-1", code="M17.0", system=_ICD10,
            display="Bilateral primary osteoarthritis of knee",
            clinical_status="active", verification_status="confirmed",
            category="Problem List", onset_date="2022-09-01",
        ),
        Condition(
            id="demo-cond-4-2", code="E66.9", system=_ICD10, display="Obesity",
            clinical_status="active", verification_status="confirmed",
            category="Problem List", onset_date="2019-03-15",
        ),
    ],
    medications=[
        MedicationOrder(
            id="demo-med-4-1", name="Ibuprofen 600 mg tablet", status="active",
            dosage="600 mg", frequency="Three times daily", route="Oral",
            quantity=90, refills=0, prescribed_date="2024-10-15",
            instructions="Take with food",
        ),
        MedicationOrder(
            id="demo-med-4-2", name="Glucosamine sulfate 1500 mg", status="active",
            dosage="1500 mg", frequency="Once daily", route="Oral",
            prescribed_date="2024-10-15",
        ),
    ],
    documents=[
        DocumentRef(
            id="demo-doc-4-1", type="Consultation Note", category="Orthopedics",
            date="2024-10-15", author="Dr. David Chang",
            description="Knee pain evaluation with radiographs",
            content=_JAMAL_NOTE,
        ),
    ],
    observations=[
        _lab("demo-obs-4-1", "39156-5", "Body mass index", "32.4", "kg/m2",
             "2024-10-15", "18.5-24.9", "High", category="vital-signs"),
        _lab("demo-obs-4-2", "4548-4", "Hemoglobin A1c", "5.6", "%", "2024-09-30",
             "<5.7"),
    ],
)


# ---------------------------------------------------------------------------
# demo-patient-5: Priya Sharma, cardiology
# ---------------------------------------------------------------------------

_PRIYA_NOTE = """CARDIOLOGY FOLLOW-UP
Patient: Priya Sharma    DOB: 12/19/1988    MRN: MRN007654

Date of visit: 11/08/2024
Provider: Dr. Elena Petrova, MD, Cardiology

CHIEF COMPLAINT:
Four-month follow-up after coronary stent placement.

HISTORY OF PRESENT ILLNESS:
Ms. Sharma is a 35-year-old woman with premature coronary artery disease,
status post drug-eluting stent to the proximal LAD in July 2024 after
presenting with exertional chest pain. Strong family history of early
CAD. Since cardiac rehab she walks 30 minutes daily without angina.

Her father had a myocardial infarction at 44 and her paternal uncle had
bypass surgery at 50. She was diagnosed with familial
hypercholesterolemia in 2018 but stopped a statin after a few months.
Hypertension was diagnosed in 2021. In early October she went to the
emergency department with sharp left chest pain after a long flight.
ECG was unchanged and troponin was negative; the pain was judged
musculoskeletal and has not recurred. No dyspnea, orthopnea,
palpitations, presyncope or leg swelling.

CURRENT MEDICATIONS:
1. Aspirin 81 mg PO daily
2. Atorvastatin 80 mg PO at bedtime
3. Metoprolol succinate 50 mg PO daily
4. Lisinopril 10 mg PO daily (increasing today)

ALLERGIES: Sulfa drugs (rash).

SOCIAL HISTORY:
Never smoker. Rare alcohol. Works as a software engineer. Completed 36
sessions of cardiac rehabilitation in October.

PHYSICAL EXAMINATION:
Vitals: BP 128/82, HR 62, RR 14, SpO2 99% on room air, BMI 23.8.
General: Well appearing, no distress.
Neck: No jugular venous distension, no carotid bruits.
Cardiovascular: Regular rate and rhythm, normal S1 and S2, no murmur,
rub or gallop.
Lungs: Clear bilaterally.
Extremities: Right radial access site healed, radial pulse 2+. No edema.
Skin: Small tendon xanthomas over both Achilles tendons.

DATA:
LDL 68 mg/dL on atorvastatin 80 mg, down from 182. Troponin negative at
the last ED evaluation. Echo shows LVEF 55%. Clinic BP 128/82.
ECG today: sinus rhythm at 62, no acute ST changes.

ASSESSMENT:
1. Coronary artery disease, status post PCI, stable. No angina.
2. Familial hyperlipidemia, at goal on high-intensity statin.
3. Hypertension, near goal. Target below 130/80.

PLAN:
- Continue aspirin 81 mg and atorvastatin 80 mg.
- Dual antiplatelet therapy completed per interventional plan; aspirin
  alone from here.
- Continue metoprolol succinate 50 mg daily.
- Increase lisinopril to 20 mg daily. Home BP log twice daily.
- Lipid panel and BMP in 3 months.
- Cascade screening recommended for her siblings; genetics referral placed.
- Continue 150 minutes a week of moderate exercise.

FOLLOW-UP:
Return to cardiology clinic in 3 months with home BP readings.

Electronically signed: Dr. Elena Petrova, MD, 11/08/2024"""

_PRIYA_ECHO = """TRANSTHORACIC ECHOCARDIOGRAM
Patient: Priya Sharma    MRN: MRN007654

FINDINGS: Normal left ventricular size. Mild hypokinesis of the apical
anterior segment. LVEF 55% by biplane method. No significant valvular
disease.

IMPRESSION: Preserved systolic function with a small regional wall
motion abnormality in the LAD territory."""

_PRIYA = NormalizedBundle(
    patient=_person(
        "demo-patient-5", "Priya", "Sharma", "female", "1988-12-19", "MRN007654",
        "priya.sharma@example.com",
    ),
    conditions=[
        Condition(
            id="demo-cond-5-1", code="I25.10", system=_ICD10,
            display="Coronary artery disease", clinical_status="active",
            verification_status="confirmed", category="Problem List",
            severity="Moderate", onset_date="2024-07-08",
            note="Drug-eluting stent to proximal LAD, July 2024",
        ),
        Condition(
            id="demo-cond-5-3", code="I10", system=_ICD10,
            display="Essential hypertension", clinical_status="active",
            verification_status="confirmed", category="Problem List",
            onset_date="2021-02-11",
        ),
        Condition(
            id="demo-cond-5-2", code="E78.01", system=_ICD10,
            display="Familial hypercholesterolemia", clinical_status="active",
            verification_status="confirmed", category="Problem List",
            onset_date="2018-05-20",
        ),
    ],
    medications=[
        MedicationOrder(
            id="demo-med-5-1", name="Lisinopril 20 mg tablet", status="active",
            dosage="20 mg", frequency="Once daily", route="Oral", quantity=30,
            refills=5, prescribed_date="2024-11-08",
        ),
        MedicationOrder(
            id="demo-med-5-2", name="Atorvastatin 80 mg tablet", status="active",
            dosage="80 mg", frequency="Once daily at bedtime", route="Oral",
            quantity=30, refills=11, prescribed_date="2024-07-10",
        ),
        MedicationOrder(
            id="demo-med-5-3", name="Aspirin 81 mg tablet", status="active",
            dosage="81 mg", frequency="Once daily", route="Oral", quantity=90,
            refills=3, prescribed_date="2024-07-10",
        ),
        MedicationOrder(
            id="demo-med-5-4", name="Metoprolol succinate 50 mg tablet",
            status="active", dosage="50 mg", frequency="Once daily", route="Oral",
            quantity=30, refills=11, prescribed_date="2024-07-10",
        ),
    ],
    documents=[
        DocumentRef(
            id="demo-doc-5-1", type="Progress Note", category="Cardiology",
            date="2024-11-08", author="Dr. Elena Petrova",
            description="Post-PCI cardiology follow-up",
            content=_PRIYA_NOTE,
        ),
        DocumentRef(
            id="demo-doc-5-2", type="Imaging Report", category="Cardiology",
            date="2024-08-14", author="Dr. Elena Petrova",
            description="Transthoracic echocardiogram",
            content=_PRIYA_ECHO,
        ),
    ],
    observations=[
        _lab("demo-obs-5-3", "85354-9", "Blood pressure", "128/82", "mmHg",
             "2024-11-08", "<130/80", "High", category="vital-signs"),
        _lab("demo-obs-5-1", "13457-7", "LDL cholesterol", "68", "mg/dL",
             "2024-11-01", "<70"),
        _lab("demo-obs-5-2", "6598-7", "Troponin T", "<0.01", "ng/mL",
             "2024-10-02", "<0.01", "Normal"),
        _lab("demo-obs-5-4", "10230-1", "Left ventricular ejection fraction", "55",
             "%", "2024-08-14", "50-70", category="imaging"),
    ],
)


_FIXTURES: dict[str, NormalizedBundle] = {
    bundle.patient.id: bundle
    for bundle in (_ANISH, _KEISHA, _MEILIN, _JAMAL, _PRIYA)
}


def is_demo_patient(patient_id: str) -> bool:
    return patient_id.startswith(DEMO_PATIENT_PREFIX)


def _with_age(person: Person, today: date | None) -> Person:
    return person.model_copy(update={"age": calculate_age(person.birth_date, today)})


def search_patients(query: str, today: date | None = None) -> list[Person]:
    """Case-insensitive substring match on name, MRN or email.

    An empty (or blank) query returns every demo patient.
    """
    needle = query.strip().lower()
    matches = []
    for bundle in _FIXTURES.values():
        person = bundle.patient
        haystacks = (person.name, person.mrn or "", person.email or "")
        if not needle or any(needle in h.lower() for h in haystacks):
            matches.append(_with_age(person, today))
    return matches


def get_patient_bundle(patient_id: str, today: date | None = None) -> NormalizedBundle | None:
    """Return the full fixture bundle for *patient_id*, or None if unknown."""
    bundle = _FIXTURES.get(patient_id)
    if bundle is None:
        return None
    documents = newest_first(bundle.documents, lambda d: d.date)
    return bundle.model_copy(
        update={
            "patient": _with_age(bundle.patient, today),
            "conditions": newest_first(bundle.conditions, lambda c: c.onset_date),
            "medications": newest_first(bundle.medications, lambda m: m.prescribed_date),
            "documents": documents,
            "observations": newest_first(bundle.observations, lambda o: o.date),
            "clinical_notes": summarize_documents(documents),
            "categories_fetched": [
                "Patient",
                "Condition",
                "MedicationRequest",
                "DocumentReference",
                "Observation",
            ],
        }
    )
