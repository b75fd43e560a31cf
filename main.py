import argparse
import asyncio
import os
import tempfile
import time

from cryptography.fernet import Fernet

from event_sourcing_core import Aggregate, Command, Repository, sqlite_event_store


def counter_aggregate() -> Aggregate:
    def increment(cmd, state, aggregate):
        return aggregate.create_event("Incremented", {"by": cmd.payload.get("by", 1)})

    def incremented(payload, state):
        state["count"] = state.get("count", 0) + payload["by"]

    return Aggregate(
        "Counter",
        commands=[{"name": "Increment", "version": 1, "callback": increment}],
        events=[
            {
                "name": "Incremented",
                "version": 1,
                "schema": {"type": "object", "required": ["by"], "properties": {"by": {"type": "integer"}}},
                "callback": incremented,
            }
        ],
    )


async def benchmark(num_events: int):
    print(f"Benchmarking with {num_events} events...")
    aggregate = counter_aggregate()

    async def run_mode(config: dict):
        async with sqlite_event_store(config) as store:
            repository = Repository(store)
            cmd = Command(name="Increment", payload={"by": 1})

            # --- Execute benchmark: load, replay, execute and append per command ---
            start_execute = time.perf_counter()
            for _ in range(num_events):
                await repository.execute(aggregate, "bench", cmd)
            execute_time = time.perf_counter() - start_execute

            # --- Replay benchmark: full history ---
            start_replay = time.perf_counter()
            stream = await repository.load(aggregate, "bench")
            state = await aggregate.project(stream)
            replay_time = time.perf_counter() - start_replay
            assert state["count"] == num_events

            # --- Replay benchmark: from snapshot ---
            await repository.snapshot(aggregate, stream)
            start_snapshot = time.perf_counter()
            stream = await repository.load(aggregate, "bench")
            state = await aggregate.project(stream)
            snapshot_time = time.perf_counter() - start_snapshot
            assert state["count"] == num_events

        return execute_time, replay_time, snapshot_time

    memory_config = {"db_path": ":memory:", "encryption_key": Fernet.generate_key()}
    mem_results = await run_mode(memory_config)

    with tempfile.TemporaryDirectory() as tmpdir:
        file_config = {"db_path": os.path.join(tmpdir, "bench.db"), "encryption_key": Fernet.generate_key()}
        file_results = await run_mode(file_config)

    print(f"\n--- Results for {num_events} events ---")
    for label, (execute_time, replay_time, snapshot_time) in (
        ("In-memory SQLite ", mem_results),
        ("File-based SQLite", file_results),
    ):
        throughput = num_events / execute_time if execute_time > 0 else 0
        print(
            f"{label} - Execute: {execute_time:.4f}s ({throughput:,.0f} commands/s), "
            f"Replay: {replay_time:.4f}s, Replay from snapshot: {snapshot_time:.4f}s"
        )


async def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--num-events", type=int, default=1000)
    args = parser.parse_args()
    await benchmark(args.num_events)


if __name__ == "__main__":
    asyncio.run(main())
