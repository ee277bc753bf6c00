"""Constants for roku-pkg."""

# Device endpoints
ECP_PORT = 8060
DEVICE_INFO_PATH = "/query/device-info"
HOME_KEYPRESS_PATH = "/keypress/home"
DEV_USERNAME = "rokudev"

# SSDP discovery
SSDP_MULTICAST_IP = "239.255.255.250"
SSDP_PORT = 1900
SSDP_SEARCH_TARGET = "roku:ecp"
DISCOVERY_WINDOW = 5.0
SUBNET_CHUNK_SIZE = 50
COMMON_PREFIXES = ["192.168.1", "192.168.0", "10.0.0", "10.0.1", "172.16.0"]

# HTTP timeouts (seconds)
LOCATION_FETCH_TIMEOUT = 3.0
SUBNET_PROBE_TIMEOUT = 2.0
REACHABILITY_TIMEOUT = 3.0
CREDENTIAL_TIMEOUT = 5.0
HOME_TIMEOUT = 5.0
UPLOAD_TIMEOUT = 120.0

# Pipeline timeouts (seconds)
BUILD_TASK_TIMEOUT = 300  # 5 minutes for build tasks
DEPLOY_TIMEOUT = 300  # after a fresh build
DEPLOY_TIMEOUT_SKIP_BUILD = 180
HEARTBEAT_INTERVAL = 10
GRACEFUL_SHUTDOWN_TIMEOUT = 5.0
TRANSFER_ABANDON_TIMEOUT = 10.0

# Settle delays (seconds)
HOME_SETTLE_DELAY = 2.0
BUILD_SETTLE_DELAY = 2.0
REKEY_SETTLE_DELAY = 5.0
