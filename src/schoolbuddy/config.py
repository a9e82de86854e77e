from pathlib import Path

# This calculates the absolute path to the project's root directory
# It starts from this file's location (.../src/schoolbuddy/config.py) and goes up three levels.
ROOT_DIR = Path(__file__).resolve().parent.parent.parent

LOGS_DIR = ROOT_DIR / "logs"
SETTINGS_FILE = ROOT_DIR / "user_settings.json"

# Remote model configuration.
CHAT_MODEL = "gemini-2.5-flash"
CHAT_TEMPERATURE = 0.7
TTS_MODEL = "gemini-2.5-flash-preview-tts"
TTS_VOICE = "Charon"  # Male voice, deeper tone
VIDEO_MODEL = "veo-3.1-fast-generate-preview"
VIDEO_RESOLUTION = "720p"
VIDEO_COUNT = 1

# Synthesised speech arrives as raw little-endian int16 PCM.
AUDIO_SAMPLE_RATE = 24000
AUDIO_CHANNELS = 1
PCM_SCALE = 32768.0

# Video job timing, in seconds.
VIDEO_POLL_INTERVAL = 5.0
VIDEO_POLL_TIMEOUT = 600.0
CREDENTIAL_SETTLE_DELAY = 1.0
VIDEO_PROGRESS_DELAY = 2.0

# User-facing texts.
WELCOME_MESSAGE_ID = "welcome"
WELCOME_TEXT = (
    "Ciao! 👋 Sono il tuo assistente per l'ISIS G.D. Romagnosi.\n\n"
    "Vuoi sapere quali indirizzi offriamo, come sono i laboratori o che progetti facciamo? "
    "Chiedimi tutto!"
)
STREAM_APOLOGY_TEXT = "Ops! Ho avuto un piccolo problema di connessione. Puoi ripetere la domanda?"
ATTACHMENT_DEFAULT_PROMPT = (
    "Ecco un documento aggiuntivo sulla scuola. Usalo per rispondere alle mie domande."
)
ATTACHMENT_SENT_TEMPLATE = "Inviato file: {name}"
VIDEO_DEFAULT_PROMPT = "Animate this image naturally"

# Progress labels shown while a video job runs. Cosmetic only.
PROGRESS_INITIALIZING = "Initializing Veo..."
PROGRESS_CHECKING_PERMISSIONS = "Checking permissions..."
PROGRESS_ANIMATING = "Animating... this takes about 1-2 mins..."
