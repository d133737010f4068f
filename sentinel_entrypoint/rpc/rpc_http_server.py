from dataclasses import dataclass
from functools import partial
import logging
import json
from importlib.metadata import version
from typing import Any, Awaitable, Callable
from contextvars import ContextVar

import aiohttp_cors
from aiohttp import web
from prometheus_client import Summary

from sentinel_entrypoint.entrypoint.exceptions import (
    ExecutionException, FailedOpException, OwnershipException,
    ValidationException)
from sentinel_entrypoint.execution_endpoint import ExecutionEndpoint
from sentinel_entrypoint.rpc.jsonrpc import \
    RPCErrorCode, RPCFault, parse_json_rpc_request
from sentinel_entrypoint.utils.encode import encode_failed_op_revert

from aiohttp.abc import AbstractAccessLogger

RESPONSE_LOG: ContextVar[dict] = ContextVar('RESPONSE_LOG', default=dict())
METHODS_KEY = web.AppKey("methods", dict)


class AccessLogger(AbstractAccessLogger):
    def log(self, request, response, time):
        if time >= 1:
            time_str = f"{round(time, 3)}s"
        elif time >= 0.001:
            time_str = f"{round(time*1000, 3)}ms"
        else:
            time_str = f"{round(time*1000_000, 3)}μs"

        log_obj = RESPONSE_LOG.get()

        referer = request.headers.get('Referer')
        agent = request.headers.get('User-Agent')
        base_log = (
            f'{request.remote} '
            f'"{request.method} {request.path}" '
            f'done in {time_str}: {response.status} '
            f'"{referer}" "{agent}" '
        )
        if "is_error" in log_obj:
            method = log_obj["method"]
            id = log_obj["id"]
            if log_obj["is_error"]:
                error_code = log_obj["error_code"]
                error_message = log_obj["error_message"]
                self.logger.warning(
                    base_log +
                    f"{method} RPC served - reqId:{id} - "
                    f"error code:{error_code} - error message:{error_message}"
                )
            else:
                self.logger.info(
                    base_log +
                    f"{method} RPC served - reqId:{id}"
                )
        else:
            self.logger.info(base_log)


@dataclass
class Success:
    payload: Any


@dataclass
class Error:
    error_code: int
    error_message: str
    error_data: str | None = None


REQUEST_TIME_eth_chainId = Summary(
    "request_processing_seconds_eth_chainId",
    "Time spent processing request eth_chainId",
)
REQUEST_TIME_eth_supportedEntryPoints = Summary(
    "request_processing_seconds_eth_supportedEntryPoints",
    "Time spent processing request eth_supportedEntryPoints",
)
REQUEST_TIME_entrypoint_handleOps = Summary(
    "request_processing_seconds_entrypoint_handleOps",
    "Time spent processing request entrypoint_handleOps",
)
REQUEST_TIME_entrypoint_getNonce = Summary(
    "request_processing_seconds_entrypoint_getNonce",
    "Time spent processing request entrypoint_getNonce",
)
REQUEST_TIME_entrypoint_getSenderAddress = Summary(
    "request_processing_seconds_entrypoint_getSenderAddress",
    "Time spent processing request entrypoint_getSenderAddress",
)
REQUEST_TIME_paymaster_getHash = Summary(
    "request_processing_seconds_paymaster_getHash",
    "Time spent processing request paymaster_getHash",
)
REQUEST_TIME_paymaster_sponsorUserOperation = Summary(
    "request_processing_seconds_paymaster_sponsorUserOperation",
    "Time spent processing request paymaster_sponsorUserOperation",
)


async def _handle_rpc_request(
    request_function: Callable[..., Awaitable[Any]], *request_arguments: Any
) -> Success | Error:
    try:
        resp = await request_function(*request_arguments)
    except FailedOpException as excp:
        return Error(
            excp.exception_code.value,
            excp.message,
            "0x" + encode_failed_op_revert(excp.op_index, excp.reason).hex(),
        )
    except ExecutionException as excp:
        return Error(
            excp.exception_code.value,
            excp.message,
            "0x" + excp.revert_data.hex(),
        )
    except (ValidationException, OwnershipException) as excp:
        return Error(excp.exception_code.value, str(excp.message))
    return Success(resp)


@REQUEST_TIME_eth_chainId.time()
async def eth_chainId(endpoint: ExecutionEndpoint, *args):
    if len(args) > 0:
        raise RPCFault(
            RPCErrorCode.InvalidMethodParams, "Method takes no parameters")
    return await _handle_rpc_request(endpoint.rpc_chainId)


@REQUEST_TIME_eth_supportedEntryPoints.time()
async def eth_supportedEntryPoints(endpoint: ExecutionEndpoint, *args):
    if len(args) > 0:
        raise RPCFault(
            RPCErrorCode.InvalidMethodParams, "Method takes no parameters")
    return await _handle_rpc_request(endpoint.rpc_supportedEntryPoints)


@REQUEST_TIME_entrypoint_handleOps.time()
async def entrypoint_handleOps(
    endpoint: ExecutionEndpoint,
    userOperationsJson: list[dict[str, Any]],
    entrypoint: str,
):
    return await _handle_rpc_request(
        endpoint.rpc_handleOps, userOperationsJson, entrypoint)


@REQUEST_TIME_entrypoint_getNonce.time()
async def entrypoint_getNonce(
    endpoint: ExecutionEndpoint, sender: str, key: str = "0x0"
):
    return await _handle_rpc_request(endpoint.rpc_getNonce, sender, key)


@REQUEST_TIME_entrypoint_getSenderAddress.time()
async def entrypoint_getSenderAddress(
    endpoint: ExecutionEndpoint, initCode: str
):
    return await _handle_rpc_request(endpoint.rpc_getSenderAddress, initCode)


async def entrypoint_getPaymaster(endpoint: ExecutionEndpoint):
    return await _handle_rpc_request(endpoint.rpc_getPaymaster)


async def paymaster_getSponsor(endpoint: ExecutionEndpoint):
    return await _handle_rpc_request(endpoint.rpc_getSponsor)


@REQUEST_TIME_paymaster_getHash.time()
async def paymaster_getHash(
    endpoint: ExecutionEndpoint,
    userOperationJson: dict[str, Any],
    validUntil: str,
    validAfter: str,
):
    return await _handle_rpc_request(
        endpoint.rpc_getHash, userOperationJson, validUntil, validAfter)


@REQUEST_TIME_paymaster_sponsorUserOperation.time()
async def paymaster_sponsorUserOperation(
    endpoint: ExecutionEndpoint,
    userOperationJson: dict[str, Any],
    validUntil: str,
    validAfter: str,
):
    return await _handle_rpc_request(
        endpoint.rpc_sponsorUserOperation,
        userOperationJson,
        validUntil,
        validAfter,
    )


async def debug_entrypoint_updateWhitelist(
    endpoint: ExecutionEndpoint, addresses: list[str]
):
    return await _handle_rpc_request(endpoint.debug_updateWhitelist, addresses)


async def debug_entrypoint_setPaymaster(
    endpoint: ExecutionEndpoint, paymaster: str
):
    return await _handle_rpc_request(endpoint.debug_setPaymaster, paymaster)


async def debug_paymaster_setSponsor(endpoint: ExecutionEndpoint, sponsor: str):
    return await _handle_rpc_request(endpoint.debug_setSponsor, sponsor)


async def debug_nonce_setSequence(
    endpoint: ExecutionEndpoint, sender: str, key: str, sequence: str
):
    return await _handle_rpc_request(
        endpoint.debug_setNonceSequence, sender, key, sequence)


async def debug_chain_setTimestamp(endpoint: ExecutionEndpoint, timestamp: str):
    return await _handle_rpc_request(endpoint.debug_setTimestamp, timestamp)


async def web3_clientVersion(endpoint: ExecutionEndpoint):
    return Success(version("sentinel-entrypoint"))

METHODS: dict[str, Callable] = {
    "eth_chainId": eth_chainId,
    "eth_supportedEntryPoints": eth_supportedEntryPoints,
    "entrypoint_handleOps": entrypoint_handleOps,
    "entrypoint_getNonce": entrypoint_getNonce,
    "entrypoint_getSenderAddress": entrypoint_getSenderAddress,
    "entrypoint_getPaymaster": entrypoint_getPaymaster,
    "paymaster_getSponsor": paymaster_getSponsor,
    "paymaster_getHash": paymaster_getHash,
    "paymaster_sponsorUserOperation": paymaster_sponsorUserOperation,
    "web3_clientVersion": web3_clientVersion,
}

DEBUG_METHODS: dict[str, Callable] = {
    "debug_entrypoint_updateWhitelist": debug_entrypoint_updateWhitelist,
    "debug_entrypoint_setPaymaster": debug_entrypoint_setPaymaster,
    "debug_paymaster_setSponsor": debug_paymaster_setSponsor,
    "debug_nonce_setSequence": debug_nonce_setSequence,
    "debug_chain_setTimestamp": debug_chain_setTimestamp,
}


def bind_methods(
    endpoint: ExecutionEndpoint, is_debug: bool = False
) -> dict[str, Callable]:
    methods = dict(METHODS)
    if is_debug:
        methods.update(DEBUG_METHODS)
    return {
        name: partial(method, endpoint) for name, method in methods.items()
    }


async def handle(request: web.Request) -> web.Response:
    methods = request.app[METHODS_KEY]
    req_str = await request.text()
    method = None
    try:
        rpc_request = parse_json_rpc_request(req_str, methods)
        logging.debug(f"request: {rpc_request}")
        method = rpc_request.method
        try:
            if isinstance(rpc_request.params, dict):
                response = await methods[method](**rpc_request.params)
            else:
                response = await methods[method](*rpc_request.params)
        except TypeError as err:
            raise RPCFault(RPCErrorCode.InvalidMethodParams, str(err))
        id = rpc_request.id
        if rpc_request.is_notification:
            return web.Response()
    except RPCFault as err:
        response = Error(err.error_code.value, err.error_message)
        id = "null"

    json_response: dict[str, Any] = {
        "jsonrpc": "2.0",
        "id": id
    }

    if isinstance(response, Success):
        RESPONSE_LOG.set(
            {
                "is_error": False,
                "id": id,
                "method": method
            }
        )
        json_response["result"] = response.payload
        logging.debug(f"response: {response.payload}")
    elif isinstance(response, Error):
        RESPONSE_LOG.set(
            {
                "is_error": True,
                "id": id,
                "method": method,
                "error_code": response.error_code,
                "error_message": response.error_message,
            }
        )
        json_response["error"] = {
            "code": response.error_code,
            "message": response.error_message
        }
        if response.error_data is not None:
            json_response["error"]["data"] = response.error_data
    else:
        logging.critical("unexpected response type returned.")

    return web.Response(
        text=json.dumps(json_response),
        content_type="application/json",
    )


def create_app(
    endpoint: ExecutionEndpoint,
    rpc_cors_domain: str = "*",
    is_debug: bool = False,
) -> web.Application:
    app = web.Application()
    app[METHODS_KEY] = bind_methods(endpoint, is_debug)
    app.router.add_post("/rpc", handle)

    cors = aiohttp_cors.setup(
        app,
        defaults={
            rpc_cors_domain: aiohttp_cors.ResourceOptions(
                allow_credentials=True, expose_headers="*", allow_headers="*"
            )
        },
    )
    for route in list(app.router.routes()):
        cors.add(route)
    return app


async def run_rpc_http_server(
    endpoint: ExecutionEndpoint,
    host: str = "localhost",
    rpc_cors_domain: str = "*",
    port: int = 3000,
    is_debug: bool = False,
) -> None:
    logging.info(f"Starting HTTP RPC Server at: {host}:{port}/rpc")
    app = create_app(endpoint, rpc_cors_domain, is_debug)
    runner = web.AppRunner(
        app,
        access_log_class=AccessLogger
    )
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
