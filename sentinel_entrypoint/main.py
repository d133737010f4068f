import asyncio
import sys
from functools import partial
from signal import SIGINT, SIGTERM

import uvloop

from sentinel_entrypoint.execution_endpoint import ExecutionEndpoint
from sentinel_entrypoint.metrics.metrics import run_metrics_server
from sentinel_entrypoint.utils.shutdown import immediate_exit

from .cli_manager import InitData, parse_args
from .rpc.rpc_http_server import run_rpc_http_server


def boot_local_network(init_data: InitData) -> ExecutionEndpoint:
    return ExecutionEndpoint(
        init_data.chain_id,
        init_data.owner_address,
        init_data.sponsor_pk,
        init_data.whitelist,
    )


async def main(cmd_args=sys.argv[1:], loop=None) -> None:
    init_data = parse_args(cmd_args)
    if loop is None:
        loop = asyncio.get_running_loop()

    for signal_enum in [SIGINT, SIGTERM]:
        exit_func = partial(immediate_exit, signal_enum=signal_enum, loop=loop)
        loop.add_signal_handler(signal_enum, exit_func)

    asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())

    execution_endpoint = boot_local_network(init_data)

    if init_data.is_metrics:
        run_metrics_server(
            host=init_data.rpc_url,
            port=init_data.metrics_port,
        )

    async with asyncio.TaskGroup() as task_group:
        task_group.create_task(
            run_rpc_http_server(
                execution_endpoint,
                host=init_data.rpc_url,
                rpc_cors_domain=init_data.rpc_cors_domain,
                port=init_data.rpc_port,
                is_debug=init_data.is_debug,
            )
        )
        # keep serving until a signal stops the loop
        task_group.create_task(asyncio.Event().wait())


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
