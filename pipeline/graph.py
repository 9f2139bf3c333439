"""
Pipeline - Stage Graph.

Next steps of every task, declared as data:

    download_archive ─┐
    accept_upload ────┴─► parse_archive ─► submit_archive ─► check_analysis
                                                                  │ (re-polls itself)
                                                                  ▼
    extract_posts ─► extract_reactions ─► extract_sentiment ─► extract_time_metadata
                                                           └──► notify
"""

from typing import Dict, Tuple

from pipeline.tasks import (
    TASK_ACCEPT_UPLOAD,
    TASK_CHECK_ANALYSIS,
    TASK_DELETE_ACCOUNT,
    TASK_DOWNLOAD_ARCHIVE,
    TASK_EXTRACT_POSTS,
    TASK_EXTRACT_REACTIONS,
    TASK_EXTRACT_SENTIMENT,
    TASK_EXTRACT_TIME_METADATA,
    TASK_NOTIFY,
    TASK_PARSE_ARCHIVE,
    TASK_PREPARE_EXPORT,
    TASK_SUBMIT_ARCHIVE,
)


PIPELINE_GRAPH: Dict[str, Tuple[str, ...]] = {
    TASK_DOWNLOAD_ARCHIVE: (TASK_PARSE_ARCHIVE,),
    TASK_ACCEPT_UPLOAD: (TASK_PARSE_ARCHIVE,),
    TASK_PARSE_ARCHIVE: (TASK_SUBMIT_ARCHIVE,),
    TASK_SUBMIT_ARCHIVE: (TASK_CHECK_ANALYSIS,),
    TASK_CHECK_ANALYSIS: (TASK_CHECK_ANALYSIS, TASK_EXTRACT_POSTS),
    TASK_EXTRACT_POSTS: (TASK_EXTRACT_REACTIONS,),
    TASK_EXTRACT_REACTIONS: (TASK_EXTRACT_SENTIMENT,),
    TASK_EXTRACT_SENTIMENT: (TASK_EXTRACT_TIME_METADATA, TASK_NOTIFY),
    TASK_EXTRACT_TIME_METADATA: (),
    TASK_NOTIFY: (),
    TASK_DELETE_ACCOUNT: (),
    TASK_PREPARE_EXPORT: (),
}


def next_steps(task_name: str) -> Tuple[str, ...]:
    """Tasks a finished task may enqueue."""
    return PIPELINE_GRAPH.get(task_name, ())


def is_allowed_step(from_task: str, to_task: str) -> bool:
    return to_task in next_steps(from_task)


__all__ = ["PIPELINE_GRAPH", "next_steps", "is_allowed_step"]
