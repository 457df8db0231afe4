# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

import os
import tempfile
import unittest

import numpy as np
import onnx
import onnx.numpy_helper
import onnx_ir as ir

from onnximport import _tensor
from onnximport.errors import InvalidExternalDataError, TensorConversionError


def _external_tensor_proto(location, dims, offset=None, length=None):
    proto = onnx.TensorProto(name="w", data_type=onnx.TensorProto.FLOAT, dims=dims)
    proto.data_location = onnx.TensorProto.EXTERNAL
    for key, value in (("location", location), ("offset", offset), ("length", length)):
        if value is not None:
            entry = proto.external_data.add()
            entry.key = key
            entry.value = str(value)
    return proto


class ToIrTensorTest(unittest.TestCase):
    def test_inline_data(self):
        array = np.arange(6, dtype=np.float32).reshape(2, 3)
        tensor = _tensor.to_ir_tensor(onnx.numpy_helper.from_array(array, name="w"))
        np.testing.assert_array_equal(tensor.numpy(), array)
        self.assertEqual(tensor.dtype, ir.DataType.FLOAT)

    def test_undefined_data_type_raises(self):
        with self.assertRaises(TensorConversionError):
            _tensor.to_ir_tensor(onnx.TensorProto(name="t", dims=[1]))

    def test_element_count_mismatch_raises(self):
        proto = onnx.TensorProto(name="t", data_type=onnx.TensorProto.FLOAT, dims=[2, 3])
        proto.float_data.extend([1.0, 2.0])
        with self.assertRaises(TensorConversionError):
            _tensor.to_ir_tensor(proto)


class ExternalDataTest(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()  # pylint: disable=consider-using-with
        self.base_dir = self.temp_dir.name
        self.array = np.arange(6, dtype=np.float32)
        with open(os.path.join(self.base_dir, "weights.bin"), "wb") as f:
            f.write(self.array.tobytes())

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_valid_external_data_is_loaded(self):
        proto = _external_tensor_proto("weights.bin", [2, 3], offset=0, length=24)
        tensor = _tensor.to_ir_tensor(proto, self.base_dir)
        np.testing.assert_array_equal(tensor.numpy(), self.array.reshape(2, 3))

    def test_offset_into_the_file(self):
        proto = _external_tensor_proto("weights.bin", [2], offset=16, length=8)
        tensor = _tensor.to_ir_tensor(proto, self.base_dir)
        np.testing.assert_array_equal(tensor.numpy(), self.array[4:])

    def test_missing_file_raises(self):
        proto = _external_tensor_proto("missing.bin", [2, 3])
        with self.assertRaisesRegex(InvalidExternalDataError, "does not exist"):
            _tensor.to_ir_tensor(proto, self.base_dir)

    def test_data_past_the_end_of_the_file_raises(self):
        proto = _external_tensor_proto("weights.bin", [4, 3], offset=0, length=48)
        with self.assertRaisesRegex(InvalidExternalDataError, "exceeds the size"):
            _tensor.to_ir_tensor(proto, self.base_dir)

    def test_length_not_matching_the_shape_raises(self):
        proto = _external_tensor_proto("weights.bin", [2, 2])
        with self.assertRaisesRegex(InvalidExternalDataError, "bytes are expected"):
            _tensor.to_ir_tensor(proto, self.base_dir)

    def test_absolute_location_raises(self):
        location = os.path.join(self.base_dir, "weights.bin")
        proto = _external_tensor_proto(location, [2, 3])
        with self.assertRaisesRegex(InvalidExternalDataError, "absolute"):
            _tensor.to_ir_tensor(proto, self.base_dir)

    def test_location_outside_of_the_model_directory_raises(self):
        nested_dir = os.path.join(self.base_dir, "model")
        os.mkdir(nested_dir)
        proto = _external_tensor_proto(os.path.join("..", "weights.bin"), [2, 3])
        with self.assertRaisesRegex(InvalidExternalDataError, "outside of the model"):
            _tensor.to_ir_tensor(proto, nested_dir)

    def test_missing_location_raises(self):
        proto = _external_tensor_proto(None, [2, 3], offset=0)
        with self.assertRaises(InvalidExternalDataError):
            _tensor.to_ir_tensor(proto, self.base_dir)


class ZeroScalarTest(unittest.TestCase):
    def test_zero_of_the_given_type(self):
        tensor = _tensor.zero_scalar(onnx.TensorProto.INT64, "w")
        self.assertEqual(tensor.dtype, ir.DataType.INT64)
        self.assertEqual(tensor.shape.dims, ())
        self.assertEqual(tensor.numpy(), 0)
        self.assertEqual(tensor.name, "w")

    def test_unknown_type_falls_back_to_float(self):
        tensor = _tensor.zero_scalar(12345)
        self.assertEqual(tensor.dtype, ir.DataType.FLOAT)


if __name__ == "__main__":
    unittest.main()
