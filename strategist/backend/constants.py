APP_NAME = "Client Strategy Generator"
APP_VERSION = "1.0.0"
DEFAULT_CORS_ALLOW_ORIGINS = [
	"http://localhost",
	"http://127.0.0.1",
	"http://localhost:3000",
]
DEFAULT_TRUSTED_HOSTS = [
	"127.0.0.1",
	"localhost",
	"testserver",
]

MAX_CONTEXT_WORDS = 170_000
MAX_UPLOAD_BYTES = 50 * 1024 * 1024
PDF_DIRECT_LIMIT_BYTES = 32 * 1024 * 1024
CHAT_HISTORY_TURNS = 12
MAX_CLARIFICATION_QUESTIONS = 10
LOG_PREVIEW_CHARS = 120

TEXT_EXTENSIONS = frozenset({"txt", "md", "csv"})
IMAGE_MIME_TYPES = {
	"jpg": "image/jpeg",
	"jpeg": "image/jpeg",
	"png": "image/png",
	"gif": "image/gif",
}
