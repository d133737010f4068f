import os
import logging
import re
import socket
import sys
from argparse import ArgumentParser, Namespace, ArgumentTypeError
from dataclasses import dataclass
from importlib.metadata import version

from .typing import Address
from .utils.keys import KeyPair, load_key, load_keystore

SENTINEL_HEADER = "\n".join(
    (
        r" ____  _____ _   _ _____ ___ _   _ _____ _     ",
        r"/ ___|| ____| \ | |_   _|_ _| \ | | ____| |    ",
        r"\___ \|  _| |  \| | | |  | ||  \| |  _| | |    ",
        r" ___) | |___| |\  | | |  | || |\  | |___| |___ ",
        r"|____/|_____|_| \_| |_| |___|_| \_|_____|_____|",
    )
)
__version__ = version("sentinel-entrypoint")


@dataclass()
class InitData:
    rpc_url: str
    rpc_port: int
    rpc_cors_domain: str
    owner_pk: str
    owner_address: Address
    sponsor_pk: str
    sponsor_address: Address
    chain_id: int
    whitelist: list[str]
    is_debug: bool
    is_metrics: bool
    metrics_port: int
    client_version: str


def address(ep: str):
    address_pattern = "^0x[0-9,a-f,A-F]{40}$"
    if not isinstance(ep, str) or re.match(address_pattern, ep) is None:
        raise ArgumentTypeError(f"Wrong address format : {ep}")
    return ep


def unsigned_int(value):
    ivalue = int(value)
    if ivalue < 0:
        raise ArgumentTypeError(
                "%s is an invalid unsigned int value" % value)
    return ivalue


def url_no_port(ep: str):
    address_pattern = "^(((https|http)://)?((?:[a-zA-Z0-9-]+\\.)+[a-zA-Z]{2,}|(?:\\d{1,3}\\.){3}\\d{1,3}|localhost))$"
    if not isinstance(ep, str) or re.match(address_pattern, ep) is None:
        raise ArgumentTypeError(f"Wrong url format : {ep}")
    return ep


def _get_env_or_default(env_var, default, value_type):
    """
    Helper function to get the value from an environment variable or return the default value.
    Supports single values or lists (for nargs="*" arguments).
    """
    value = os.getenv(env_var, None)
    if value is not None:
        if value_type == list:
            return value.split(",")
        return value_type(value)
    return default


def initialize_argument_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="Sentinel",
        description="Whitelisting EIP-4337 EntryPoint development node",
    )

    group = parser.add_mutually_exclusive_group(required=False)

    group.add_argument(
        "--owner_secret",
        type=str,
        help="EntryPoint and paymaster owner private key",
        nargs="?",
        default=_get_env_or_default("SENTINEL_OWNER_SECRET", None, str),
    )

    group.add_argument(
        "--keystore_file_path",
        type=str,
        help=(
            "Owner V3 keystore file path, "
            "used instead of --owner_secret"
        ),
        nargs="?",
        default=_get_env_or_default("SENTINEL_KEYSTORE_FILE_PATH", None, str),
    )

    parser.add_argument(
        "--keystore_file_password",
        type=str,
        help="Owner Keystore file password - defaults to no password",
        nargs="?",
        const="",
        default=_get_env_or_default("SENTINEL_KEYSTORE_FILE_PASSWORD", "", str),
    )

    parser.add_argument(
        "--sponsor_secret",
        type=str,
        help="Paymaster sponsor private key - defaults to the owner key",
        nargs="?",
        default=_get_env_or_default("SENTINEL_SPONSOR_SECRET", None, str),
    )

    parser.add_argument(
        "--rpc_url",
        type=url_no_port,
        help="RPC serve url - defaults to localhost",
        nargs="?",
        const="127.0.0.1",
        default=_get_env_or_default("SENTINEL_RPC_URL", "127.0.0.1", str),
    )

    parser.add_argument(
        "--rpc_cors_domain",
        type=str,
        help="rpc cors allowed domain - defaults to *",
        nargs="?",
        const="*",
        default=_get_env_or_default("SENTINEL_RPC_CORS_DOMAIN", "*", str),
    )

    parser.add_argument(
        "--rpc_port",
        type=unsigned_int,
        help="RPC serve port - defaults to 3000",
        nargs="?",
        const=3000,
        default=_get_env_or_default("SENTINEL_RPC_PORT", 3000, unsigned_int),
    )

    parser.add_argument(
        "--chain_id",
        type=unsigned_int,
        help="Chain id of the local chain - defaults to 1337",
        nargs="?",
        const=1337,
        default=_get_env_or_default("SENTINEL_CHAIN_ID", 1337, unsigned_int),
    )

    parser.add_argument(
        "--whitelist",
        type=address,
        help="Initial whitelist of call targets",
        nargs="*",
        default=_get_env_or_default("SENTINEL_WHITELIST", [], list),
    )

    parser.add_argument(
        "--verbose",
        help="show debug log",
        nargs="?",
        const=True,
        default=_get_env_or_default(
            "SENTINEL_VERBOSE", False, lambda v: v.lower() == "true"),
    )

    parser.add_argument(
        "--debug",
        help="expose debug_* rpc namespace for testing",
        nargs="?",
        const=True,
        default=_get_env_or_default(
            "SENTINEL_DEBUG", False, lambda v: v.lower() == "true"),
    )

    parser.add_argument(
        "--metrics",
        help="enable metrics collection",
        nargs="?",
        const=True,
        default=_get_env_or_default(
            "SENTINEL_METRICS", False, lambda v: v.lower() == "true"),
    )

    parser.add_argument(
        "--metrics_port",
        type=unsigned_int,
        help="Metrics serve port - defaults to 8000",
        nargs="?",
        const=8000,
        default=_get_env_or_default("SENTINEL_METRICS_PORT", 8000, unsigned_int),
    )

    parser.add_argument(
        "--version",
        action="version",
        version=__version__,
    )

    return parser


def parse_args(cmd_args: list[str]) -> InitData:
    argument_parser: ArgumentParser = initialize_argument_parser()
    args = argument_parser.parse_args(cmd_args)
    # Required mutually exclusive arguments
    if not args.owner_secret and not args.keystore_file_path:
        argument_parser.error("You must specify either --owner_secret or --keystore_file_path, or set SENTINEL_OWNER_SECRET or SENTINEL_KEYSTORE_FILE_PATH environment variables.")
    if args.owner_secret and args.keystore_file_path:
        argument_parser.error("You can only specify either --owner_secret or --keystore_file_path but not both at the same time")
    for whitelisted_address in args.whitelist:
        try:
            address(whitelisted_address)
        except ArgumentTypeError as err:
            argument_parser.error(str(err))
    init_data = get_init_data(args)
    return init_data


def init_logging(args: Namespace):
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s.%(msecs)03d %(levelname)s %(message)s",
        datefmt="%b %d %H:%M:%S",
    )


def init_owner_key(args: Namespace) -> KeyPair:
    if args.keystore_file_path is not None:
        return load_keystore(
            args.keystore_file_path, args.keystore_file_password)
    return load_key(args.owner_secret)


def init_sponsor_key(args: Namespace, owner_key: KeyPair) -> KeyPair:
    if args.sponsor_secret is None:
        return owner_key
    return load_key(args.sponsor_secret)


def check_if_valid_rpc_url_and_port(rpc_url, rpc_port) -> None:
    try:
        socket.getaddrinfo(rpc_url, rpc_port)
    except socket.gaierror:
        logging.critical(f"Invalid RPC url {rpc_url} and port {rpc_port}")
        sys.exit(1)

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as soc:
        try:
            soc.bind((rpc_url, rpc_port))
        except socket.error as message:
            logging.critical(
                f"Bind failed. {str(message)} for RPC url {rpc_url} and port {rpc_port}"
            )
            sys.exit(1)


def get_init_data(args: Namespace) -> InitData:
    init_logging(args)

    check_if_valid_rpc_url_and_port(args.rpc_url, args.rpc_port)

    try:
        owner_key = init_owner_key(args)
        sponsor_key = init_sponsor_key(args, owner_key)
    except (ValueError, OSError) as excp:
        logging.critical(f"Invalid owner or sponsor key: {excp}")
        sys.exit(1)

    if args.metrics and args.metrics_port == args.rpc_port:
        logging.critical(
            f"Metrics port {args.metrics_port} is already used by the RPC server"
        )
        sys.exit(1)

    ret = InitData(
        args.rpc_url,
        args.rpc_port,
        args.rpc_cors_domain,
        owner_key.private_key,
        owner_key.address,
        sponsor_key.private_key,
        sponsor_key.address,
        args.chain_id,
        args.whitelist,
        args.debug,
        args.metrics,
        args.metrics_port,
        __version__,
    )

    if args.verbose:
        print(SENTINEL_HEADER)
        print("version : " + __version__)

    logging.info("Starting *** Sentinel *** - Whitelisting EntryPoint node")

    return ret
