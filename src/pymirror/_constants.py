"""Internal constants shared across the library."""

#: Reserved namespace id for the default context.
BASE_NAMESPACE = "base"

#: Attribute holding the client-assigned temporary key.
LOCAL_CREATE_TIME = "localCreateTime"

#: Attribute holding a direct resource link on a record.
RECORD_URL = "url"

#: Response body field signalling an application-level failure.
ERROR_MESSAGE_FIELD = "errorMessage"

#: Query parameters carrying the scope discriminator.
SCOPE_TYPE_PARAM = "scopeType"
SCOPE_ID_PARAM = "scopeId"

DEFAULT_IDENTITY_FIELD = "id"
DEFAULT_DEBOUNCE_SECONDS = 0.15
DEFAULT_REQUEST_TIMEOUT = 30.0

JSON_CONTENT_TYPE = "application/json"
USER_AGENT = "pymirror"
