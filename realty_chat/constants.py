"""
Business constants for the Realty Chat engine.

Fixed user-facing texts and the filter vocabularies are stable across
environments. Thresholds and limits that vary per deployment live in
config.py.
"""

# --- Lead capture prompts ---
ASK_NAME_RESPONSE = "Can you give me your name?"
ASK_EMAIL_RESPONSE = "Thanks! Can I have your email?"
ASK_PHONE_RESPONSE = "Great! Finally, your phone number?"
LEAD_CONFIRMATION_RESPONSE = "We'll have an agent contact you soon!"
LEAD_ALREADY_CAPTURED_RESPONSE = "You're already in our system, we'll reach out shortly!"

INVALID_NAME_RESPONSE = "Name contains invalid characters."
INVALID_EMAIL_RESPONSE = "Please provide a valid email address."
INVALID_PHONE_RESPONSE = "Please provide a valid phone number."

# --- Grounding / generation fallbacks ---
NO_DATA_RESPONSE = (
    "I couldn't find any properties that match your criteria. "
    "Could you please provide more details or adjust your requirements?"
)
GENERATION_FAILED_RESPONSE = (
    "I'm having trouble answering right now. Please try again in a moment."
)
CLARIFY_RESPONSE = "Could you tell me a bit more about what you're looking for?"
INTERNAL_ERROR_RESPONSE = "Sorry, something went wrong on our side. Please try again."
UNSAFE_INPUT_RESPONSE = "I can only help with real estate questions."

# --- Language directives ---
ARABIC_DIRECTIVE = "أجب باللغة العربية فقط."
ENGLISH_DIRECTIVE = "Answer in English only."
ARABIC_CHAR_PATTERN = r"[\u0600-\u06FF]"

# --- Filter vocabularies ---
# Checked in order; more specific categories precede "apartment" so that
# "penthouse apartment" is a penthouse.
PROPERTY_CATEGORIES: list[tuple[str, str]] = [
    (r"penthouses?", "Penthouse"),
    (r"town\s?-?houses?", "Townhouse"),
    (r"villas?", "Villa"),
    (r"offices?", "Office"),
    (r"shops?|retail", "Shop"),
    (r"apartments?|flats?", "Apartment"),
]

# Longest names first so "the pearl" wins over a shorter overlap.
LOCATION_GAZETTEER: list[str] = sorted(
    [
        "lusail",
        "the pearl",
        "west bay",
        "west bay lagoon",
        "al waab",
        "al sadd",
        "msheireb",
        "al rayyan",
        "al wakrah",
        "old airport",
        "al dafna",
        "education city",
        "fox hills",
        "porto arabia",
        "viva bahriya",
        "al gharrafa",
        "al duhail",
        "al khor",
        "doha",
    ],
    key=len,
    reverse=True,
)

CURRENCY = "QAR"

# --- Ingestion ---
DOCUMENT_CHUNK_SIZE = 1000
PROPERTY_DESCRIPTION_MAX_CHARS = 500

# --- API metadata ---
API_TITLE = "Realty Chat API"
API_VERSION = "1.0.0"
