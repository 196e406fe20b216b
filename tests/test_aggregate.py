import asyncio
import unittest

from fake_s3 import FakeS3Client

from apuntes.aggregate import AggregationOrchestrator, summarize
from apuntes.counter import RecursiveCounter
from apuntes.errors import OperationCancelled
from apuntes.models import EntryKind, ErrorKind, StoreEntry, FOLDER_MIME_TYPE
from apuntes.s3 import S3Store


def folder(key: str) -> StoreEntry:
    return StoreEntry(
        key=key,
        kind=EntryKind.FOLDER,
        display_name=key.rstrip("/").rsplit("/", 1)[-1],
        mime_type=FOLDER_MIME_TYPE,
    )


def _orchestrator(client: FakeS3Client, pool_size: int = 5, max_depth: int = 64):
    counter = RecursiveCounter(S3Store("bucket-a", client=client, page_size=2), max_depth)
    return AggregationOrchestrator(counter, pool_size=pool_size)


OBJECTS = [
    "root/A/1.pdf",
    "root/A/2.pdf",
    "root/A/x/3.pdf",
    "root/B/1.pdf",
    "root/C/",
    "root/D/1.pdf",
]


class TestAggregationOrchestrator(unittest.TestCase):
    def test_failed_folder_is_isolated(self) -> None:
        client = FakeS3Client(OBJECTS, fail_prefixes=["root/B/"])
        orchestrator = _orchestrator(client)
        folders = [folder(f"root/{name}/") for name in "ABCD"]

        results = asyncio.run(orchestrator.count_all_folders(folders))

        self.assertEqual(list(results), ["root/A/", "root/B/", "root/C/", "root/D/"])
        self.assertEqual(results["root/A/"].total_files, 3)
        self.assertIsNone(results["root/A/"].error)
        self.assertEqual(results["root/B/"].error, ErrorKind.STORE_UNAVAILABLE)
        self.assertEqual(results["root/B/"].total_files, 0)
        self.assertIsNotNone(results["root/B/"].message)
        self.assertTrue(results["root/C/"].ok)
        self.assertEqual(results["root/C/"].total_files, 0)
        self.assertEqual(results["root/D/"].total_files, 1)
        self.assertEqual(summarize(results), ErrorKind.PARTIAL_AGGREGATION_FAILURE)

    def test_all_succeeding_is_not_partial(self) -> None:
        orchestrator = _orchestrator(FakeS3Client(OBJECTS))
        results = asyncio.run(
            orchestrator.count_all_folders([folder("root/A/"), folder("root/D/")])
        )
        self.assertIsNone(summarize(results))
        self.assertEqual(
            {key: result.total_files for key, result in results.items()},
            {"root/A/": 3, "root/D/": 1},
        )

    def test_depth_error_is_reported_per_folder(self) -> None:
        orchestrator = _orchestrator(FakeS3Client(OBJECTS), max_depth=1)
        results = asyncio.run(
            orchestrator.count_all_folders([folder("root/"), folder("root/A/")])
        )
        self.assertEqual(results["root/"].error, ErrorKind.DEPTH_EXCEEDED)
        self.assertEqual(results["root/A/"].total_files, 3)

    def test_files_and_duplicates_are_ignored(self) -> None:
        orchestrator = _orchestrator(FakeS3Client(OBJECTS))
        document = StoreEntry(
            key="root/A/1.pdf",
            kind=EntryKind.FILE,
            display_name="1.pdf",
            mime_type="application/pdf",
            size=100,
        )
        results = asyncio.run(
            orchestrator.count_all_folders([document, folder("root/A/"), folder("root/A/")])
        )
        self.assertEqual(list(results), ["root/A/"])
        self.assertEqual(asyncio.run(orchestrator.count_all_folders([])), {})

    def test_pool_bounds_concurrent_store_calls(self) -> None:
        keys = [f"f{index}/doc.pdf" for index in range(8)]
        client = FakeS3Client(keys, delay=0.02)
        orchestrator = _orchestrator(client, pool_size=2)

        results = asyncio.run(
            orchestrator.count_all_folders([folder(f"f{index}/") for index in range(8)])
        )

        self.assertEqual(len(results), 8)
        self.assertTrue(all(result.total_files == 1 for result in results.values()))
        self.assertLessEqual(client.max_in_flight, 2)
        self.assertEqual(len(client.calls), 8)

    def test_cancellation_discards_results(self) -> None:
        client = FakeS3Client(OBJECTS)
        orchestrator = _orchestrator(client)

        async def run():
            cancel = asyncio.Event()
            cancel.set()
            return await orchestrator.count_all_folders([folder("root/A/")], cancel=cancel)

        with self.assertRaises(OperationCancelled):
            asyncio.run(run())
        self.assertEqual(client.calls, [])

    def test_cancel_while_workers_are_running(self) -> None:
        keys = [f"root/{name}/{index}.pdf" for name in "ABCDEF" for index in range(6)]
        client = FakeS3Client(keys, delay=0.05)
        orchestrator = _orchestrator(client, pool_size=2)
        folders = [folder(f"root/{name}/") for name in "ABCDEF"]

        async def run():
            cancel = asyncio.Event()
            task = asyncio.create_task(orchestrator.count_all_folders(folders, cancel=cancel))
            await asyncio.sleep(0.12)
            cancel.set()
            with self.assertRaises(OperationCancelled):
                await task
            issued = len(client.calls)
            await asyncio.sleep(0.1)
            return issued

        issued = asyncio.run(run())
        self.assertGreater(issued, 0)
        self.assertLess(issued, 18)
        self.assertEqual(len(client.calls), issued)
        self.assertLessEqual(client.max_in_flight, 2)


if __name__ == "__main__":
    unittest.main()
