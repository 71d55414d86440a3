from rich.console import Console

# Name of the LinkML class whose slots describe the database collections.
DATABASE_CLASS_NAME = "Database"

# Name of the field that holds a document's own identifier.
DEFAULT_ID_FIELD_NAME = "id"

# Default overall timeout for one validation call.
DEFAULT_TIMEOUT_SECONDS = 5.0

# HTTP status codes the API layer renders for blocked and failed validations.
HTTP_CONFLICT = 409
HTTP_INTERNAL_SERVER_ERROR = 500

console = Console()
