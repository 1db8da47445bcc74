#!/usr/bin/env python3
"""
Tests for the UNBUILT -> BUILT state machine: build once, retry after a
failed build, skipped re-validation, setters and debug logging.
"""

import logging

import numpy as np
import pytest
from kernelgrid import (
    AmbiguousDimensions,
    Kernel,
    KernelConfigError,
    KernelSourceError,
    KernelState,
    UnsupportedAutoDimensionType,
    UnsupportedInputType,
    create_kernel,
)
from tests.test_utils import assert_grid_equal, run_kernel


def _count_builds(kernel, monkeypatch):
    calls = []
    original = kernel.backend.build

    def counting_build(descriptor, args):
        calls.append(args)
        return original(descriptor, args)

    monkeypatch.setattr(kernel.backend, "build", counting_build)
    return calls


class TestBuildOnce:
    def test_starts_unbuilt(self):
        kernel = Kernel("return 1;", dimensions=[1])
        assert kernel.state is KernelState.UNBUILT
        assert not kernel.is_built
        assert kernel.program is None

    def test_built_after_first_call(self):
        kernel = Kernel("return 1;", dimensions=[1])
        kernel()
        assert kernel.state is KernelState.BUILT
        assert kernel.is_built

    def test_assembled_exactly_once(self, monkeypatch):
        kernel = Kernel("return this.thread.x;", dimensions=[4])
        calls = _count_builds(kernel, monkeypatch)
        for _ in range(5):
            assert_grid_equal(kernel(), [0, 1, 2, 3])
        assert len(calls) == 1
        assert kernel.build_count == 1

    def test_ensure_built_is_idempotent(self):
        kernel = Kernel("return 1;", dimensions=[1])
        program = kernel.ensure_built()
        assert kernel.ensure_built() is program

    def test_explicit_build_returns_cached_program(self):
        kernel = Kernel("return this.thread.x;", dimensions=[3])
        first = kernel.build()
        source = kernel.to_source()
        kernel.set_dimensions([5])
        assert kernel.build() is first
        assert kernel.ensure_built() is first
        assert kernel.build_count == 1
        assert kernel.to_source() == source
        assert kernel().shape == (3,)

    def test_built_calls_skip_revalidation(self):
        kernel = Kernel("return a[this.thread.x];", ["a"])
        assert_grid_equal(kernel([1, 2, 3]), [1, 2, 3])
        # Dimensions stay those resolved at build time
        assert_grid_equal(kernel([5, 6, 7, 8]), [5, 6, 7])


class TestRetryAfterFailure:
    def test_unsupported_auto_dimension_type(self):
        kernel = Kernel("return a[this.thread.x];", ["a"])
        with pytest.raises(UnsupportedAutoDimensionType):
            kernel("abc")
        assert kernel.state is KernelState.UNBUILT
        assert_grid_equal(kernel([4, 5]), [4, 5])
        assert kernel.state is KernelState.BUILT

    def test_unsupported_input_type(self):
        kernel = Kernel("return 1;", ["a"], dimensions=[2])
        with pytest.raises(UnsupportedInputType):
            kernel({"a": 1})
        assert kernel.state is KernelState.UNBUILT
        assert_grid_equal(kernel(3), [1, 1])

    def test_ambiguous_dimensions(self):
        result = run_kernel("return a + b;", [1], [2], param_names=["a", "b"])
        assert not result.success
        assert isinstance(result.error, AmbiguousDimensions)

    def test_source_error_leaves_unbuilt(self):
        kernel = Kernel("return missing;", dimensions=[1])
        with pytest.raises(KernelSourceError):
            kernel()
        assert kernel.state is KernelState.UNBUILT


class TestSetters:
    def test_setters_are_fluent(self):
        kernel = Kernel("return 1;")
        assert kernel.set_dimensions([2]).set_constants({"c": 1}).set_output_dtype("float32") is kernel
        assert kernel.descriptor.dimensions == (2,)
        assert dict(kernel.descriptor.constants) == {"c": 1}
        assert kernel.descriptor.output_dtype == "float32"

    def test_setters_replace_descriptor(self):
        kernel = Kernel("return 1;", dimensions=[2])
        before = kernel.descriptor
        kernel.set_graphical(True)
        assert kernel.descriptor is not before
        assert before.graphical is False

    def test_built_program_kept_after_setter(self):
        kernel = Kernel("return 1;", dimensions=[2])
        kernel()
        kernel.set_dimensions([5])
        assert kernel.program.dimensions == (2,)
        assert kernel().shape == (2,)

    def test_numpy_dimensions(self):
        kernel = Kernel("return this.thread.x + this.thread.y;", dimensions=np.array([2, 2]))
        assert kernel.descriptor.dimensions == (2, 2)
        assert_grid_equal(kernel(), [[0, 1], [1, 2]])

    def test_invalid_dimensions(self):
        with pytest.raises(KernelConfigError):
            Kernel("return 1;", dimensions=[0])
        with pytest.raises(KernelConfigError):
            Kernel("return 1;", dimensions=[1, 1, 1, 1])

    def test_unknown_output_dtype(self):
        with pytest.raises(KernelConfigError):
            Kernel("return 1;", output_dtype="not-a-dtype")

    def test_unknown_mode(self):
        with pytest.raises(KernelConfigError):
            Kernel("return 1;", mode="gpu")

    def test_helper_functions(self):
        kernel = create_kernel("return twice(this.thread.x);", dimensions=[3])
        kernel.add_function("twice", "return v * 2;", ["v"])
        assert_grid_equal(kernel(), [0, 2, 4])

    def test_python_helper_through_this(self):
        kernel = Kernel(lambda this: this.offset(this.thread.x), dimensions=[2])
        kernel.add_function("offset", lambda this, v: v + 100)
        assert_grid_equal(kernel(), [100, 101])


class TestDebug:
    def test_debug_logs_build_at_info(self, caplog):
        kernel = Kernel("return 1;", dimensions=[1], debug=True, name="noisy")
        with caplog.at_level(logging.INFO, logger="kernelgrid.kernel"):
            kernel()
        messages = [r.getMessage() for r in caplog.records if r.name == "kernelgrid.kernel"]
        assert any("Building kernel noisy" in m for m in messages)
        assert any("Built kernel noisy" in m for m in messages)

    def test_quiet_by_default(self, caplog):
        kernel = Kernel("return 1;", dimensions=[1])
        with caplog.at_level(logging.INFO, logger="kernelgrid.kernel"):
            kernel()
        assert not [r for r in caplog.records if r.name == "kernelgrid.kernel"]

    def test_debug_from_environment(self, monkeypatch):
        monkeypatch.setenv("KERNELGRID_DEBUG", "1")
        assert Kernel("return 1;").descriptor.debug is True
        monkeypatch.setenv("KERNELGRID_DEBUG", "0")
        assert Kernel("return 1;").descriptor.debug is False

    def test_name_from_python_body(self):
        def brighten(this):
            return 1
        assert Kernel(brighten).descriptor.name == "brighten"
        assert Kernel(lambda this: 1).descriptor.name == "kernel"

    def test_repr_shows_state(self):
        kernel = Kernel("return 1;", dimensions=[1], name="k")
        assert "state=unbuilt" in repr(kernel)
        kernel()
        assert "state=built" in repr(kernel)


if __name__ == "__main__":
    pytest.main([__file__])
