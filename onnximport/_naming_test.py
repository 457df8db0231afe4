# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

import unittest

import onnx
import onnx_ir as ir

from onnximport import _naming
from onnximport._node import OnnxNode


class _Scope:
    """Resolves every name to a fresh value."""

    def get(self, name):
        return ir.Value(name=name)


def _onnx_node(op_type, inputs, outputs, name="", domain=""):
    proto = onnx.helper.make_node(op_type, inputs, outputs, name=name, domain=domain)
    return OnnxNode(proto, _Scope())


class SetNodeNamesTest(unittest.TestCase):
    def test_named_node_gives_its_name_to_the_producer(self):
        node = ir.Node("", "Relu", [ir.Value(name="x")])
        _naming.set_node_names(_onnx_node("Relu", ["x"], ["y"], name="relu"), node.outputs)
        self.assertEqual(node.name, "relu")
        self.assertEqual(node.outputs[0].name, "y")
        self.assertEqual(_naming.tensor_names(node.outputs[0]), {"y"})

    def test_anonymous_node_is_named_after_its_output(self):
        node = ir.Node("", "Relu", [ir.Value(name="x")])
        _naming.set_node_names(_onnx_node("Relu", ["x"], ["y"]), node.outputs)
        self.assertEqual(node.name, "y")

    def test_anonymous_node_with_several_outputs_keeps_the_last_name(self):
        node = ir.Node("", "Split", [ir.Value(name="x")], num_outputs=2)
        _naming.set_node_names(_onnx_node("Split", ["x"], ["a", "b"]), node.outputs)
        self.assertEqual(node.name, "b")
        self.assertEqual([output.name for output in node.outputs], ["a", "b"])

    def test_one_producer_for_all_outputs_takes_the_node_name(self):
        node = ir.Node("", "Split", [ir.Value(name="x")], num_outputs=2)
        onnx_node = _onnx_node("Split", ["x"], ["a", "b"], name="split")
        _naming.set_node_names(onnx_node, node.outputs)
        self.assertEqual(node.name, "split")

    def test_separate_producers_are_named_after_node_and_output(self):
        x = ir.Value(name="x")
        first = ir.Node("", "Relu", [x])
        second = ir.Node("", "Neg", [x])
        outputs = [first.outputs[0], second.outputs[0]]
        _naming.set_node_names(_onnx_node("Custom", ["x"], ["a", "b"], name="n"), outputs)
        self.assertEqual(first.name, "n_a")
        self.assertEqual(second.name, "n_b")

    def test_identity_adds_names_without_renaming(self):
        x = ir.Value(name="x")
        _naming.set_node_names(_onnx_node("Identity", ["x"], ["y"], name="id"), [x])
        self.assertEqual(x.name, "x")
        self.assertEqual(_naming.tensor_names(x), {"x", "y"})

    def test_identity_names_an_unnamed_value(self):
        value = ir.Node("", "Relu", [ir.Value(name="x")]).outputs[0]
        _naming.set_node_names(_onnx_node("Identity", ["t"], ["y"]), [value])
        self.assertEqual(value.name, "y")
        self.assertIsNone(value.producer().name)

    def test_outputs_past_the_declared_ones_are_not_named(self):
        node = ir.Node("", "LSTM", [ir.Value(name="x")], num_outputs=3)
        _naming.set_node_names(_onnx_node("LSTM", ["x"], ["y"]), node.outputs)
        self.assertEqual(node.outputs[0].name, "y")
        self.assertIsNone(node.outputs[1].name)
        self.assertIsNone(node.outputs[2].name)

    def test_missing_outputs_are_skipped(self):
        node = ir.Node("", "Dropout", [ir.Value(name="x")])
        _naming.set_node_names(
            _onnx_node("Dropout", ["x"], ["y", "mask"]), [node.outputs[0], None]
        )
        self.assertEqual(node.outputs[0].name, "y")


class ResultNameTest(unittest.TestCase):
    def test_result_name_uses_the_output_index(self):
        node = ir.Node("", "Split", [ir.Value(name="x")], num_outputs=2)
        self.assertEqual(_naming.result_name("b", node.outputs[1]), "b/sink_port_1")

    def test_result_name_of_graph_input(self):
        self.assertEqual(_naming.result_name("y", ir.Value(name="x")), "y/sink_port_0")


if __name__ == "__main__":
    unittest.main()
