import pytest
import torch

from loglinear import EncodedDataset


def test_coordinate_view_flattens_examples():
    dataset = EncodedDataset(
        num_features=4, num_classes=2, data=[[0, 3], [], [1]], labels=[1, 0, 1]
    )
    coords = dataset.coordinates
    assert coords.feature_ids.tolist() == [0, 3, 1]
    assert coords.example_ids.tolist() == [0, 0, 2]
    assert coords.feature_values.tolist() == [1.0, 1.0, 1.0]
    assert coords.num_examples == 3
    assert not dataset.is_real_valued
    assert dataset.weight_tensor is None


def test_real_values_and_weights():
    dataset = EncodedDataset(
        num_features=3,
        num_classes=2,
        data=[[0, 2], [1]],
        labels=[0, 1],
        values=[[0.5, 2.0], [3.0]],
        data_weights=[1.0, 0.25],
    )
    assert dataset.is_real_valued
    assert dataset.feature_values.tolist() == [0.5, 2.0, 3.0]
    assert dataset.weight_tensor.tolist() == [1.0, 0.25]


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(data=[[0]], labels=[0, 1]),
        dict(data=[[5]], labels=[0]),
        dict(data=[[0]], labels=[2]),
        dict(data=[[0, 1]], labels=[0], values=[[1.0]]),
        dict(data=[[0]], labels=[0], data_weights=[-1.0]),
        dict(data=[[0]], labels=[0], data_weights=[1.0, 1.0]),
    ],
)
def test_invalid_datasets_fail_at_construction(kwargs):
    with pytest.raises(ValueError):
        EncodedDataset(num_features=3, num_classes=2, **kwargs)


def test_subset_keeps_feature_and_label_space(small_dataset):
    sub = small_dataset.subset([4, 0])
    assert sub.num_features == small_dataset.num_features
    assert sub.num_classes == small_dataset.num_classes
    assert sub.data == (small_dataset.data[4], small_dataset.data[0])
    assert sub.labels == (small_dataset.labels[4], small_dataset.labels[0])


def test_with_weights(small_dataset):
    weighted = small_dataset.with_weights([2.0] * len(small_dataset))
    assert torch.equal(weighted.weight_tensor, torch.full((len(small_dataset),), 2.0, dtype=torch.float64))
    assert small_dataset.weight_tensor is None
