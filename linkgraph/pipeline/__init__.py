"""Job pipeline: durable leased queue, worker pools and orchestration."""

from linkgraph.pipeline.graph_pipeline import GraphPipeline
from linkgraph.pipeline.job_queue import JobQueue
from linkgraph.pipeline.worker import WorkerPool

__all__ = ["GraphPipeline", "JobQueue", "WorkerPool"]
