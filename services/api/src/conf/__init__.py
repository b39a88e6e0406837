from pydantic import BaseModel

from utils import auth, env, log
from utils.env import EnvVarSpec

logger = log.get_logger(__name__)

# Set to True to enable authentication
USE_AUTH = True

#### Types ####

class HttpServerConf(BaseModel):
    host: str
    port: int
    autoreload: bool

class AuctionConf(BaseModel):
    bid_max_retries: int
    page_size_default: int
    page_size_max: int
    status_sweep_seconds: int

#### Env Vars ####

## Auth ##

AUTH_JWT_SECRET = EnvVarSpec(id="AUTH_JWT_SECRET", is_secret=True)
AUTH_JWT_ALGORITHM = EnvVarSpec(id="AUTH_JWT_ALGORITHM", default="HS256")
AUTH_JWT_AUDIENCE = EnvVarSpec(id="AUTH_JWT_AUDIENCE", is_optional=True)
AUTH_JWT_ISSUER = EnvVarSpec(id="AUTH_JWT_ISSUER", is_optional=True)

## Logging ##

LOG_LEVEL = EnvVarSpec(id="LOG_LEVEL", default="INFO")

ENVIRONMENT = EnvVarSpec(id="ENVIRONMENT", default="development")

## HTTP ##

HTTP_HOST = EnvVarSpec(id="HTTP_HOST", default="0.0.0.0")

HTTP_PORT = EnvVarSpec(
    id="HTTP_PORT",
    default="8000",
    parse=int,
    type=(int, ...),
)

HTTP_AUTORELOAD = EnvVarSpec(
    id="HTTP_AUTORELOAD",
    parse=lambda x: x.lower() == "true",
    default="false",
    type=(bool, ...),
)

HTTP_EXPOSE_ERRORS = EnvVarSpec(
    id="HTTP_EXPOSE_ERRORS",
    default="false",
    parse=lambda x: x.lower() == "true",
    type=(bool, ...),
)

## Auctions ##

AUCTION_BID_MAX_RETRIES = EnvVarSpec(
    id="AUCTION_BID_MAX_RETRIES",
    default="5",
    parse=int,
    type=(int, ...),
)

AUCTION_PAGE_SIZE_DEFAULT = EnvVarSpec(
    id="AUCTION_PAGE_SIZE_DEFAULT",
    default="20",
    parse=int,
    type=(int, ...),
)

AUCTION_PAGE_SIZE_MAX = EnvVarSpec(
    id="AUCTION_PAGE_SIZE_MAX",
    default="100",
    parse=int,
    type=(int, ...),
)

# 0 disables the periodic status sweep; reads still derive status lazily
AUCTION_STATUS_SWEEP_SECONDS = EnvVarSpec(
    id="AUCTION_STATUS_SWEEP_SECONDS",
    default="60",
    parse=int,
    type=(int, ...),
)

#### Validation ####
VALIDATED_ENV_VARS = [
    HTTP_AUTORELOAD,
    HTTP_EXPOSE_ERRORS,
    HTTP_PORT,
    LOG_LEVEL,
    AUCTION_BID_MAX_RETRIES,
    AUCTION_PAGE_SIZE_DEFAULT,
    AUCTION_PAGE_SIZE_MAX,
    AUCTION_STATUS_SWEEP_SECONDS,
]

# Only validate auth vars if USE_AUTH is True
if USE_AUTH:
    VALIDATED_ENV_VARS.extend([
        AUTH_JWT_SECRET,
        AUTH_JWT_ALGORITHM,
        AUTH_JWT_AUDIENCE,
        AUTH_JWT_ISSUER,
    ])

def validate() -> bool:
    return env.validate(VALIDATED_ENV_VARS)

#### Getters ####

def get_auth_config() -> auth.AuthClientConfig:
    """Get authentication configuration."""
    return auth.AuthClientConfig(
        secret=env.parse(AUTH_JWT_SECRET),
        algorithms=[env.parse(AUTH_JWT_ALGORITHM)],
        audience=env.parse(AUTH_JWT_AUDIENCE),
        issuer=env.parse(AUTH_JWT_ISSUER),
    )

def get_http_expose_errors() -> bool:
    return env.parse(HTTP_EXPOSE_ERRORS)

def get_log_level() -> str:
    return env.parse(LOG_LEVEL)

def get_environment() -> str:
    return env.parse(ENVIRONMENT)

def get_http_conf() -> HttpServerConf:
    return HttpServerConf(
        host=env.parse(HTTP_HOST),
        port=env.parse(HTTP_PORT),
        autoreload=env.parse(HTTP_AUTORELOAD),
    )

def get_auction_conf() -> AuctionConf:
    bid_max_retries = max(0, env.parse(AUCTION_BID_MAX_RETRIES))
    page_size_max = max(1, env.parse(AUCTION_PAGE_SIZE_MAX))
    page_size_default = max(1, min(page_size_max, env.parse(AUCTION_PAGE_SIZE_DEFAULT)))
    status_sweep_seconds = max(0, env.parse(AUCTION_STATUS_SWEEP_SECONDS))

    return AuctionConf(
        bid_max_retries=bid_max_retries,
        page_size_default=page_size_default,
        page_size_max=page_size_max,
        status_sweep_seconds=status_sweep_seconds,
    )
