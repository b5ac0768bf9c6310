"""
Tests for the background processing queue.
"""

from __future__ import annotations

import asyncio


def _summary(document_id: str):
    from docrag.ingestion.schemas import ExtractionMethod, ProcessingSummary

    return ProcessingSummary(
        document_id=document_id, chunks=3, extracted_length=900,
        extraction_method=ExtractionMethod.PLAIN_TEXT,
    )


class TestProcessingQueue:
    async def test_jobs_report_through_callbacks(self):
        from docrag.services.task_queue import ProcessingQueue

        completed, failed = [], []

        async def process(document_id, owner_id):
            if document_id == "bad":
                raise ValueError("cannot parse")
            return _summary(document_id)

        queue = ProcessingQueue(
            process,
            workers=2,
            on_complete=completed.append,
            on_error=lambda doc_id, exc: failed.append((doc_id, str(exc))),
        )
        queue.start()
        try:
            for doc_id in ("a", "bad", "b"):
                queue.enqueue(doc_id, "alice")
            await asyncio.wait_for(queue.join(), timeout=5)
        finally:
            await queue.stop()

        assert sorted(s.document_id for s in completed) == ["a", "b"]
        assert failed == [("bad", "cannot parse")]

    async def test_enqueue_returns_before_processing(self):
        from docrag.services.task_queue import ProcessingQueue

        release = asyncio.Event()
        started = []

        async def process(document_id, owner_id):
            started.append(document_id)
            await release.wait()
            return _summary(document_id)

        queue = ProcessingQueue(process, workers=1)
        queue.start()
        try:
            queue.enqueue("slow", "alice")
            assert started == []
            await asyncio.sleep(0.01)
            assert started == ["slow"]
            release.set()
            await asyncio.wait_for(queue.join(), timeout=5)
        finally:
            await queue.stop()

    async def test_failing_callback_does_not_kill_worker(self):
        from docrag.services.task_queue import ProcessingQueue

        seen = []

        def on_complete(summary):
            seen.append(summary.document_id)
            raise RuntimeError("callback broke")

        async def process(document_id, owner_id):
            return _summary(document_id)

        queue = ProcessingQueue(process, workers=1, on_complete=on_complete)
        queue.start()
        try:
            queue.enqueue("one", "alice")
            queue.enqueue("two", "alice")
            await asyncio.wait_for(queue.join(), timeout=5)
        finally:
            await queue.stop()
        assert seen == ["one", "two"]

    async def test_duplicate_enqueue_is_skipped(self):
        from docrag.services.task_queue import ProcessingQueue

        release = asyncio.Event()
        calls = []

        async def process(document_id, owner_id):
            calls.append(document_id)
            await release.wait()
            return _summary(document_id)

        queue = ProcessingQueue(process, workers=2)
        queue.start()
        try:
            assert queue.enqueue("doc", "alice") is True
            assert queue.enqueue("doc", "alice") is False
            await asyncio.sleep(0.01)
            assert queue.enqueue("doc", "alice") is False
            release.set()
            await asyncio.wait_for(queue.join(), timeout=5)
            assert queue.enqueue("doc", "alice") is True
            await asyncio.wait_for(queue.join(), timeout=5)
        finally:
            await queue.stop()
        assert calls == ["doc", "doc"]

    async def test_start_and_stop(self):
        from docrag.services.task_queue import ProcessingQueue

        async def process(document_id, owner_id):
            return _summary(document_id)

        queue = ProcessingQueue(process, workers=3)
        assert queue.running is False
        queue.start()
        queue.start()
        assert queue.running is True
        assert len(queue._workers) == 3
        await queue.stop()
        assert queue.running is False

    async def test_processes_real_documents(self, services, two_heading_text):
        from docrag.services.task_queue import ProcessingQueue

        done = []
        queue = ProcessingQueue(services.processor.process_document, on_complete=done.append)
        doc = services.processor.create_document("alice", "r.txt", "text/plain", two_heading_text.encode())
        queue.start()
        try:
            queue.enqueue(doc.id, "alice")
            await asyncio.wait_for(queue.join(), timeout=30)
        finally:
            await queue.stop()

        assert [s.document_id for s in done] == [doc.id]
        assert services.store.get_document(doc.id, "alice").processed is True

    async def test_two_workers_process_a_document_once(self, services, two_heading_text):
        from docrag.services.task_queue import ProcessingQueue

        done, failed = [], []
        queue = ProcessingQueue(
            services.processor.process_document,
            workers=2,
            on_complete=done.append,
            on_error=lambda doc_id, exc: failed.append(exc),
        )
        doc = services.processor.create_document("alice", "r.txt", "text/plain", two_heading_text.encode())
        queue.start()
        try:
            queue.enqueue(doc.id, "alice")
            queue.enqueue(doc.id, "alice")
            await asyncio.wait_for(queue.join(), timeout=30)
        finally:
            await queue.stop()

        assert [s.document_id for s in done] == [doc.id]
        assert failed == []
        stored = services.store.get_document(doc.id, "alice")
        assert stored.processed is True
        assert stored.processing_error is None
        assert services.store.count_chunks(document_id=doc.id) == done[0].chunks
