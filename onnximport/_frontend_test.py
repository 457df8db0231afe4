# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

import os
import tempfile
import unittest

import numpy as np
import onnx
import onnx.numpy_helper
import onnx.parser
import onnx_ir as ir

import onnximport
from onnximport import _naming
from onnximport._framework_node import FRAMEWORK_NODE_KEY, is_framework_node
from onnximport._graph import ONNX_GRAPH_KEY

_GEMM_RELU = """
    <ir_version: 8, opset_import: ["" : 17], producer_name: "test">
    agraph (float[2,3] x, float[3,4] w, float[4] b) => (float[2,4] y) {
        t = Gemm <alpha: float = 2.0> (x, w, b)
        y = Relu (t)
    }
"""

_IF_CAPTURE = """
    <ir_version: 8, opset_import: ["" : 17]>
    agraph (bool cond, float[2] x, float[2] unused) => (float[2] y, float[2] z) {
        y = If (cond) <
            then_branch = then_graph () => (float[2] a) {
                a = Relu (x)
            },
            else_branch = else_graph () => (float[2] b) {
                b = Identity (x)
            }
        >
        z = Identity (x)
    }
"""

_IF_CONSTANT = """
    <ir_version: 8, opset_import: ["" : 17]>
    agraph (bool cond, float[2] x) => (float[2] y)
    <float[2] w = {1.0, 2.0}>
    {
        y = If (cond) <
            then_branch = then_graph () => (float[2] a) {
                a = Add (x, w)
            },
            else_branch = else_graph () => (float[2] b) {
                b = Identity (w)
            }
        >
    }
"""


def _structure(graph: ir.Graph):
    """Summarize a graph without the names generated for anonymous nodes and values."""
    nodes = []
    for node in graph:
        subgraphs = {
            name: _structure(attr.as_graph())
            for name, attr in node.attributes.items()
            if isinstance(attr, ir.Attr) and attr.type == ir.AttributeType.GRAPH
        }
        nodes.append((node.op_type, len(node.inputs), len(node.outputs), subgraphs))
    return {
        "inputs": [value.name for value in graph.inputs],
        "outputs": [sorted(_naming.tensor_names(value)) for value in graph.outputs],
        "initializers": sorted(graph.initializers),
        "nodes": nodes,
    }


class ConvertModelTest(unittest.TestCase):
    def test_convert_model_from_proto(self):
        model = onnximport.convert_model(onnx.parser.parse_model(_GEMM_RELU))
        self.assertIsInstance(model, ir.Model)
        self.assertEqual(model.ir_version, 8)
        self.assertEqual(model.producer_name, "test")
        self.assertEqual(model.opset_imports, {"": 17})
        self.assertEqual(
            [node.op_type for node in model.graph],
            ["MatMul", "Constant", "Mul", "Add", "Relu"],
        )

    def test_convert_model_from_file_with_external_data(self):
        weights = np.arange(12, dtype=np.float32).reshape(3, 4)
        graph = onnx.helper.make_graph(
            [onnx.helper.make_node("MatMul", ["x", "w"], ["y"])],
            "external",
            [onnx.helper.make_tensor_value_info("x", onnx.TensorProto.FLOAT, [2, 3])],
            [onnx.helper.make_tensor_value_info("y", onnx.TensorProto.FLOAT, [2, 4])],
            initializer=[onnx.numpy_helper.from_array(weights, name="w")],
        )
        model_proto = onnx.helper.make_model(
            graph, opset_imports=[onnx.helper.make_opsetid("", 17)]
        )
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "model.onnx")
            onnx.save_model(
                model_proto,
                path,
                save_as_external_data=True,
                all_tensors_to_one_file=True,
                location="weights.bin",
                size_threshold=0,
            )
            model = onnximport.convert_model(path)
            np.testing.assert_array_equal(
                model.graph.initializers["w"].const_value.numpy(), weights
            )

    def test_nested_graphs_do_not_rename_values_of_the_enclosing_graph(self):
        model = onnximport.convert_model(onnx.parser.parse_model(_IF_CAPTURE))
        self.assertEqual(_naming.tensor_names(model.graph.inputs[1]), {"x", "z"})
        else_branch = model.graph[0].attributes["else_branch"].as_graph()
        self.assertEqual(_naming.tensor_names(else_branch.inputs[0]), {"x", "b"})

    def test_model_without_operators_to_resolve_is_unchanged(self):
        model = onnximport.convert_model(onnx.parser.parse_model(_GEMM_RELU))
        result = onnximport.ResolveFrameworkNodesPass()(model)
        self.assertFalse(result.modified)


class DecodeModelTest(unittest.TestCase):
    def test_decoded_model_keeps_onnx_operators(self):
        model = onnximport.decode_model(onnx.parser.parse_model(_GEMM_RELU))
        self.assertEqual([node.op_type for node in model.graph], ["Gemm", "Relu"])
        self.assertTrue(all(is_framework_node(node) for node in model.graph))
        gemm = model.graph[0]
        self.assertEqual(gemm.name, "t")
        self.assertEqual(gemm.attributes["alpha"].value, 2.0)
        self.assertEqual(gemm.meta[FRAMEWORK_NODE_KEY].op_type, "Gemm")
        self.assertIn(ONNX_GRAPH_KEY, model.graph.meta)

    def test_decoded_nested_graph_inputs_include_captured_values(self):
        model = onnximport.decode_model(onnx.parser.parse_model(_IF_CAPTURE))
        node = model.graph[0]
        self.assertEqual(node.op_type, "If")
        self.assertEqual([value.name for value in node.inputs], ["cond", "x"])
        then_branch = node.attributes["then_branch"].as_graph()
        self.assertEqual([value.name for value in then_branch.inputs], ["x"])
        self.assertTrue(is_framework_node(then_branch[0]))

    def test_resolving_decoded_model_matches_conversion(self):
        for text in (_GEMM_RELU, _IF_CAPTURE, _IF_CONSTANT):
            with self.subTest(text=text):
                converted = onnximport.convert_model(onnx.parser.parse_model(text))
                decoded = onnximport.decode_model(onnx.parser.parse_model(text))
                resolved = onnximport.convert_decoded(decoded)
                self.assertIs(resolved, decoded)
                self.assertEqual(_structure(resolved.graph), _structure(converted.graph))
                self.assertNotIn(ONNX_GRAPH_KEY, resolved.graph.meta)
                self.assertFalse(any(is_framework_node(node) for node in resolved.graph))

    def test_resolved_nested_graph_forwards_constants_of_the_enclosing_graph(self):
        resolved = onnximport.convert_decoded(
            onnximport.decode_model(onnx.parser.parse_model(_IF_CONSTANT))
        )
        w = resolved.graph.initializers["w"]
        self.assertEqual(_naming.tensor_names(w), {"w"})
        else_branch = resolved.graph[0].attributes["else_branch"].as_graph()
        self.assertEqual([node.op_type for node in else_branch], ["Identity"])
        self.assertIs(else_branch[0].inputs[0], w)
        self.assertIs(else_branch.outputs[0], else_branch[0].outputs[0])
        self.assertEqual(else_branch.outputs[0].name, "b")

    def test_resolving_prunes_unused_inputs(self):
        decoded = onnximport.decode_model(onnx.parser.parse_model(_IF_CAPTURE))
        self.assertEqual(
            [value.name for value in decoded.graph.inputs], ["cond", "x", "unused"]
        )
        resolved = onnximport.convert_decoded(decoded)
        self.assertEqual([value.name for value in resolved.graph.inputs], ["cond", "x"])


if __name__ == "__main__":
    unittest.main()
