"""
coldcopy: Bulk backup of Swift object storage into cold-storage buckets.

This package copies every object of every container in a Swift-compatible
object store into per-container cold-storage buckets at an S3-compatible
destination, streaming and compressing each object with bounded
concurrency.

The primary entry point for programmatic use is the `BackupPipeline` class.
"""

from typing import List

from coldcopy.pipeline import BackupPipeline

__all__: List[str] = ["BackupPipeline"]
