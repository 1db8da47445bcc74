#!/usr/bin/env python3
"""
Tests for textual export and two-phase precompilation.
"""

import math

import numpy as np
import pytest
import sexpdata
from kernelgrid import (
    AmbiguousDimensions,
    Kernel,
    KernelConfigError,
    PrecompiledKernel,
    SubKernel,
    compile_kernel,
    create_kernel_map,
    load_kernel,
)
from kernelgrid.export import encode_body, resolve_body
from kernelgrid.runtime.grid import GridProgram
from tests.test_utils import add_arrays, assert_grid_equal, double, square_cell


class TestBodies:
    def test_source_body_kept_as_text(self):
        assert encode_body("return 1;") == ("return 1;", False)

    def test_module_function_becomes_reference(self):
        text, is_ref = encode_body(add_arrays)
        assert is_ref
        assert text.endswith("test_utils:add_arrays")
        assert resolve_body(text, True) is add_arrays

    def test_lambda_cannot_be_exported(self):
        with pytest.raises(KernelConfigError):
            encode_body(lambda this: 1)

    def test_closure_cannot_be_exported(self):
        def inner(this):
            return 1
        with pytest.raises(KernelConfigError):
            encode_body(inner)

    def test_bad_reference(self):
        with pytest.raises(KernelConfigError):
            resolve_body("no_such_module_xyz:fn", True)
        with pytest.raises(KernelConfigError):
            resolve_body("missing-separator", True)


class TestToSource:
    def test_memoized(self):
        kernel = Kernel("return c * this.thread.x;", dimensions=[3], constants={"c": 2})
        first = kernel.to_source()
        kernel.set_constants({"c": 100})
        assert kernel.to_source() is first

    def test_builds_when_needed(self):
        kernel = Kernel("return 1;", dimensions=[2])
        kernel.to_source()
        assert kernel.is_built

    def test_unbuilt_without_dimensions(self):
        with pytest.raises(AmbiguousDimensions):
            Kernel("return 1;").to_source()

    def test_text_is_sexpr(self):
        text = Kernel("return 1;", dimensions=[2, 3]).to_source()
        parsed = sexpdata.loads(text)
        assert parsed[0] == sexpdata.Symbol("kernelgrid")
        assert "(2 3 1)" in text

    def test_round_trip_source_kernel(self):
        body = "let s = scale;\n// comment\nreturn s * this.thread.x + this.thread.y;"
        kernel = Kernel(body, dimensions=[3, 2], constants={"scale": 2})
        program = load_kernel(kernel.to_source())
        assert isinstance(program, GridProgram)
        assert_grid_equal(program(), kernel())

    def test_round_trip_python_kernel(self):
        a, b = np.array([1.0, 2.0]), np.array([10.0, 20.0])
        kernel = Kernel(add_arrays, dimensions=[2])
        expected = kernel(a, b)
        program = load_kernel(kernel.to_source())
        assert program.descriptor.body is add_arrays
        assert_grid_equal(program(a, b), expected)

    def test_lambda_kernel_export_fails(self):
        kernel = Kernel(lambda this: 1, dimensions=[1])
        with pytest.raises(KernelConfigError):
            kernel.to_source()


class TestPrecompile:
    def test_thread_dim_and_arg_types(self):
        kernel = Kernel("return a[this.thread.x];", ["a"], dimensions=[4])
        precompiled = kernel.precompile("Array")
        assert precompiled.thread_dim == (4, 1, 1)
        assert precompiled.dimensions == (4,)
        assert precompiled.param_names == ("a",)
        assert precompiled.arg_types == ("Array",)

    def test_requires_dimensions(self):
        with pytest.raises(KernelConfigError):
            Kernel("return 1;").precompile()

    def test_uses_built_dimensions(self):
        kernel = Kernel("return a[this.thread.x];", ["a"])
        kernel([1, 2, 3])
        assert kernel.precompile().thread_dim == (3, 1, 1)

    def test_compile_kernel_resumes(self):
        kernel = Kernel(square_cell, dimensions=[4])
        program = Kernel.compile_kernel(kernel.precompile())
        assert_grid_equal(program(), [0, 1, 4, 9])

    def test_text_round_trip_preserves_fields(self):
        kernel = Kernel("return lo + hi;", dimensions=[2, 2], name="bounds", output_dtype="float32",
                        constants={"lo": -math.inf, "hi": 1.5, "on": True, "table": [1, 2, 3], "n": 4})
        precompiled = kernel.precompile("Number")
        assert PrecompiledKernel.from_source(precompiled.to_source()) == precompiled
        assert PrecompiledKernel.from_source(precompiled.to_source(pretty=False)) == precompiled

    def test_variadic_parameters_round_trip(self):
        precompiled = PrecompiledKernel(name="v", thread_dim=(1, 1, 1), dimensions=(1,),
                                        param_names=None, arg_types=(), body="return 1;")
        assert PrecompiledKernel.from_source(precompiled.to_source()).param_names is None

    def test_nan_constant(self):
        kernel = Kernel("return 1;", dimensions=[1], constants={"bad": math.nan})
        restored = PrecompiledKernel.from_source(kernel.precompile().to_source())
        assert math.isnan(restored.constants["bad"])

    def test_unexportable_constant(self):
        kernel = Kernel("return 1;", dimensions=[1], constants={"obj": object()})
        with pytest.raises(KernelConfigError):
            kernel.precompile()


class TestSubKernelsAndHelpers:
    def test_map_form_round_trip(self):
        sub = {"sum": SubKernel("add", "return a + b;", ("a", "b"))}
        kernel = create_kernel_map(sub, "return add(this.thread.x, 1) * 3;", dimensions=[3])
        expected = kernel()
        out = load_kernel(kernel.to_source())()
        assert set(out) == {"result", "sum"}
        assert_grid_equal(out["sum"], expected["sum"])
        assert_grid_equal(out["result"], expected["result"])

    def test_list_form_round_trip(self):
        kernel = create_kernel_map([SubKernel("twice", double)], "return twice(this.thread.x);",
                                   dimensions=[2])
        out = load_kernel(kernel.to_source())()
        assert_grid_equal(out[0], [0, 2])
        assert_grid_equal(out.result, [0, 2])

    def test_helper_functions_exported(self):
        kernel = Kernel("return inc(this.thread.x);", dimensions=[2])
        kernel.add_function("inc", "return v + 1;", ["v"])
        text = kernel.to_source()
        assert "(function :name \"inc\"" in text
        assert_grid_equal(load_kernel(text)(), [1, 2])

    def test_graphical_round_trip(self):
        kernel = Kernel("this.color(1, 0, 0, 1);", dimensions=[2, 1], graphical=True)
        program = load_kernel(kernel.to_source())
        assert program.graphical
        assert program() is None
        assert program.surface.to_bytes() == bytes([255, 0, 0, 255] * 2)


class TestMalformedText:
    @pytest.mark.parametrize("text", [
        "(",
        "(other :version 1)",
        "(kernelgrid :version 99 :name \"k\")",
        "(kernelgrid :version 1 :name)",
        "(kernelgrid :version 1 :name \"k\" :thread-dim (1 1 1) :dimensions (1) :params ())",
    ])
    def test_rejected(self, text):
        with pytest.raises(KernelConfigError):
            PrecompiledKernel.from_source(text)

    def test_compile_kernel_function(self):
        precompiled = Kernel("return 2;", dimensions=[2]).precompile()
        assert_grid_equal(compile_kernel(precompiled)(), [2, 2])


if __name__ == "__main__":
    pytest.main([__file__])
