"""Example worker consuming workflow triggers from the configured queue.

Start it with ``PLUGFLOW_TRIGGER_QUEUE=redis PLUGFLOW_DISPATCHER=http`` to pick
up triggers queued by ``plugflow workflow trigger`` and forward every step to
the plugin HTTP endpoint.
"""

import asyncio

from plugflow import WorkflowExecutor, get_dispatcher, get_repository, get_trigger_queue
from plugflow.config import configure_logging, load_config
from plugflow.worker import TriggerWorker


async def main():
    config = load_config()
    configure_logging(config)

    executor = WorkflowExecutor(
        repository=get_repository(config=config),
        dispatcher=get_dispatcher(config=config),
    )
    worker = TriggerWorker(get_trigger_queue(config=config), executor)
    await worker.start()


if __name__ == "__main__":
    asyncio.run(main())
