"""Constants for pynetatmo."""

# Base URL for the Netatmo API
BASE_URL = "https://api.netatmo.com"

# OAuth2 endpoints
TOKEN_ENDPOINT = "/oauth2/token"

# Default scope requested by password and authorization code grants
DEFAULT_SCOPE = (
    "read_station read_thermostat write_thermostat read_camera write_camera "
    "access_camera read_presence access_presence read_smokedetector "
    "read_homecoach"
)

# Request timeout in seconds
DEFAULT_TIMEOUT = 15

# Upper bound of calls parked while waiting for authentication
MAX_PENDING_CALLS = 256

# Measure queries
MAX_LIMIT = 1024
# Numeric dates at or below this value are seconds, above are milliseconds
DATE_SECONDS_THRESHOLD = 1e10
DATE_END_LAST = "last"

# Event channels
EVENT_ERROR = "error"
EVENT_WARNING = "warning"
EVENT_AUTHENTICATED = "authenticated"

# API Endpoints
# Weather
GETPUBLICDATA_ENDPOINT = "/api/getpublicdata"
GETSTATIONSDATA_ENDPOINT = "/api/getstationsdata"
GETMEASURE_ENDPOINT = "/api/getmeasure"
# Security
GETHOMEDATA_ENDPOINT = "/api/gethomedata"
GETEVENTSUNTIL_ENDPOINT = "/api/geteventsuntil"
GETLASTEVENTOF_ENDPOINT = "/api/getlasteventof"
GETNEXTEVENTS_ENDPOINT = "/api/getnextevents"
GETCAMERAPICTURE_ENDPOINT = "/api/getcamerapicture"
SETPERSONSAWAY_ENDPOINT = "/api/setpersonsaway"
SETPERSONSHOME_ENDPOINT = "/api/setpersonshome"
ADDWEBHOOK_ENDPOINT = "/api/addwebhook"
DROPWEBHOOK_ENDPOINT = "/api/dropwebhook"
# Energy
HOMESDATA_ENDPOINT = "/api/homesdata"
HOMESTATUS_ENDPOINT = "/api/homestatus"
CREATENEWHOMESCHEDULE_ENDPOINT = "/api/createnewhomeschedule"
DELETEHOMESCHEDULE_ENDPOINT = "/api/deletehomeschedule"
RENAMEHOMESCHEDULE_ENDPOINT = "/api/renamehomeschedule"
SYNCHOMESCHEDULE_ENDPOINT = "/api/synchomeschedule"
SWITCHHOMESCHEDULE_ENDPOINT = "/api/switchhomeschedule"
GETROOMMEASURE_ENDPOINT = "/api/getroommeasure"
SETROOMTHERMPOINT_ENDPOINT = "/api/setroomthermpoint"
SETTHERMMODE_ENDPOINT = "/api/setthermmode"
# Aircare
GETHOMECOACHSDATA_ENDPOINT = "/api/gethomecoachsdata"
