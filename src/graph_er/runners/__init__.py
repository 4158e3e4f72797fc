from graph_er.runners.local import LocalBatchPipeline

__all__ = ["LocalBatchPipeline"]
