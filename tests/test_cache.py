import gc

import numpy as np
import pytest

from grapho.cache import EvalCache, payload_nbytes
from grapho.dirty import Fingerprint, InputStamp
from grapho.engine import Engine
from grapho.exceptions import CacheBindingError
from grapho.graph import Graph, NodeId


def _fp(param_version=0, *stamps):
    return Fingerprint(param_version, tuple(stamps))


def test_get_requires_matching_fingerprint():
    cache = EvalCache()
    node = NodeId(0)
    entry = cache.put(node, [1.0], _fp(0))
    assert cache.get(node, _fp(0)) is entry
    assert cache.get(node, _fp(1)) is None
    assert cache.get(NodeId(1), _fp(0)) is None
    stats = cache.stats()
    assert (stats.hits, stats.misses, stats.entries) == (1, 2, 1)
    assert stats.hit_ratio == pytest.approx(1 / 3)


def test_output_versions_increase():
    cache = EvalCache()
    a = cache.put(NodeId(0), [1.0], _fp(0))
    b = cache.put(NodeId(1), [2.0], _fp(0))
    c = cache.put(NodeId(0), [3.0], _fp(1))
    assert a.output_version < b.output_version < c.output_version
    assert cache.peek(NodeId(0)) is c


def test_fingerprint_includes_input_versions():
    cache = EvalCache()
    node = NodeId(2)
    source = None
    cache.put(node, [0.0], _fp(0, InputStamp(source, 4)))
    assert cache.get(node, _fp(0, InputStamp(source, 4))) is not None
    assert cache.get(node, _fp(0, InputStamp(source, 5))) is None


def test_invalidate_and_clear():
    cache = EvalCache()
    cache.put(NodeId(0), [1.0], _fp())
    cache.put(NodeId(1), [1.0], _fp())
    cache.invalidate(NodeId(0))
    assert NodeId(0) not in cache
    cache.invalidate_many([NodeId(1), NodeId(5)])
    assert len(cache) == 0
    cache.put(NodeId(3), [1.0], _fp())
    cache.clear()
    assert len(cache) == 0


def test_byte_bound_evicts_least_recently_used(graph, demo):
    cache = EvalCache(max_bytes=400)
    engine = Engine(graph, cache=cache)
    snapshot, report = engine.evaluate()
    assert snapshot is not None
    assert cache.nbytes <= 400
    assert len(cache) == 1
    assert demo[2] in cache


def test_oversized_outputs_are_still_delivered(graph, demo):
    cache = EvalCache(max_bytes=100)
    engine = Engine(graph, cache=cache)
    snapshot, report = engine.evaluate()
    assert snapshot is not None
    assert len(cache) == 0
    _, report = engine.evaluate()
    assert report.cache_hits == 0


def test_zero_byte_bound_rejects_empty_payloads():
    cache = EvalCache(max_bytes=0)
    node = NodeId(0)
    entry = cache.put(node, [np.empty((0, 3))], _fp(0))
    assert entry.nbytes == 0
    assert len(cache) == 0
    assert cache.get(node, _fp(0)) is None


def test_cache_belongs_to_one_graph(registry):
    first = Graph(registry)
    second = Graph(registry)
    cache = EvalCache()
    Engine(first, cache=cache)
    Engine(first, cache=cache)
    with pytest.raises(CacheBindingError):
        Engine(second, cache=cache)

    cache.detach()
    Engine(second, cache=cache)


def test_binding_released_with_graph(registry):
    cache = EvalCache()
    graph = Graph(registry)
    cache.attach(graph)
    cache.put(NodeId(0), [1.0], _fp())
    del graph
    gc.collect()
    cache.attach(Graph(registry))
    assert len(cache) == 0


def test_payload_nbytes_counts_buffers(graph, demo, engine):
    engine.evaluate()
    entry = engine.cache.peek(demo[0])
    (mesh,) = entry.outputs
    assert entry.nbytes == mesh.nbytes == payload_nbytes([mesh])
