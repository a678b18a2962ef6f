# -*- coding: utf-8 -*-

"""DXF 阀门符号识别：聚类、位号归属、模式匹配。"""

from .attributes import merge
from .clustering import cluster
from .config import MatcherConfig, build_tag_regex, load_list, load_zone_table
from .engine import PassResult, run_pass
from .errors import ConfigError, MutationError, ValvematchError
from .marking import MarkerBook, decide
from .model import Cluster, MatchRecord, Marker, Primitive, Snapshot, Tag, Zone
from .ownership import assign_owner, owned_cluster, resolve_claims
from .patterns import Pattern, load_patterns, match

__version__ = "0.1.0"
