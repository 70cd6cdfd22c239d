"""
SKCluster — VPC machine lifecycle for cluster reconcilers.

Resolves machine references, converges cloud instances, and keeps
load-balancer pool membership in step with them. Every operation is
idempotent and meant to be re-invoked on each control-loop tick.

A smilinTux Open Source Project.
"""

import os

__version__ = "0.1.0"
__author__ = "smilinTux"

CLUSTER_HOME = os.environ.get("SKCLUSTER_HOME", "~/.skcluster")
