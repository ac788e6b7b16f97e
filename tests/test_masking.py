import pytest
import torch

from adasoft.errors import InvalidTargetError
from adasoft.model.clusters import ClusterPartitioner
from adasoft.model.masking import TargetMasker


def test_partition_covers_each_position_once():
    torch.manual_seed(0)
    masker = TargetMasker(ClusterPartitioner([5, 50, 100]))
    targets = torch.randint(0, 100, (257,))

    part = masker.partition(targets)
    positions = torch.cat([c.positions for c in part.chunks.values()])

    assert torch.equal(torch.sort(positions).values, torch.arange(targets.numel()))


def test_shifted_targets_and_head_targets():
    masker = TargetMasker(ClusterPartitioner([5, 50, 100]))
    targets = torch.tensor([[3, 5, 49], [50, 99, 0]])

    part = masker.partition(targets)

    assert sorted(part.chunks) == [0, 1, 2]
    assert part.active_tails == [1, 2]
    assert part.chunks[0].positions.tolist() == [0, 5]
    assert part.chunks[0].targets.tolist() == [3, 0]
    assert part.chunks[1].positions.tolist() == [1, 2]
    assert part.chunks[1].targets.tolist() == [0, 44]
    assert part.chunks[2].targets.tolist() == [0, 49]
    assert part.head_targets.tolist() == [3, 5, 5, 6, 6, 0]


def test_absent_clusters_are_not_active():
    masker = TargetMasker(ClusterPartitioner([5, 50, 100]))
    part = masker.partition(torch.tensor([1, 2, 60]))

    assert part.active_tails == [2]
    assert 1 not in part.chunks


def test_out_of_range_targets_rejected():
    masker = TargetMasker(ClusterPartitioner([5, 50, 100]))
    with pytest.raises(InvalidTargetError):
        masker.partition(torch.tensor([0, 150]))
    with pytest.raises(InvalidTargetError):
        masker.partition(torch.tensor([-1, 2]))
    with pytest.raises(InvalidTargetError):
        masker.partition(torch.tensor([1.0, 2.0]))


def test_ignore_index_excluded_from_partition():
    masker = TargetMasker(ClusterPartitioner([5, 50, 100]), ignore_index=-100)
    part = masker.partition(torch.tensor([-100, 7, -100, 2]))

    assert part.valid.tolist() == [False, True, False, True]
    assert part.num_valid == 2
    positions = torch.cat([c.positions for c in part.chunks.values()])
    assert sorted(positions.tolist()) == [1, 3]
