from google.api_core import exceptions as api_exceptions
from tenacity import retry_if_exception_type, stop_after_attempt, wait_exponential

# Shared retry configuration for calls against the Compute API
# usage: @retry(**RETRY_CONFIG)
# Only transient failures are retried; rejections surface immediately.
RETRY_CONFIG = {
    "stop": stop_after_attempt(3),
    "wait": wait_exponential(multiplier=1, min=4, max=10),
    "retry": retry_if_exception_type(
        (
            api_exceptions.ServiceUnavailable,
            api_exceptions.TooManyRequests,
            api_exceptions.InternalServerError,
        )
    ),
    "reraise": True,
}

COMPUTE_API_BASE = "https://www.googleapis.com/compute/v1/"

# Relative references, as the Compute API accepts them in resource bodies
NETWORK_REF_TEMPLATE = "projects/{project_id}/global/networks/{network_name}"
SUBNET_REF_TEMPLATE = "projects/{project_id}/regions/{region}/subnetworks/{name}"
FIREWALL_REF_TEMPLATE = "projects/{project_id}/global/firewalls/{name}"
ROUTE_REF_TEMPLATE = "projects/{project_id}/global/routes/{name}"
GATEWAY_REF_TEMPLATE = "projects/{project_id}/global/gateways/{name}"

ROUTING_MODES = ("GLOBAL", "REGIONAL")
DEFAULT_ROUTING_MODE = "GLOBAL"

DIRECTIONS = ("INGRESS", "EGRESS")
MIN_PRIORITY = 0
MAX_PRIORITY = 65535

# Bounded fan-out for sibling operations during apply
DEFAULT_PARALLELISM = 10

STATE_VERSION = 1
LOCAL_STATE_DIR = ".vpcplan"
REMOTE_STATE_OBJECT = "default.state.json"
REMOTE_LOCK_OBJECT = "default.lock"
# Lock id reported for a lock file that exists but cannot be parsed
UNREADABLE_LOCK_ID = "unreadable"
