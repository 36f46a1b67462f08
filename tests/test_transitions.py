import copy
import pickle

import pytest

import chainkit
from chainkit.transitions import NO_TRANSITION, TransitionContainer


def test_no_transition_is_singleton():
    assert chainkit.transitions._NoTransition() is NO_TRANSITION


@pytest.mark.parametrize(
    "copy_func",
    (copy.copy, copy.deepcopy, lambda obj: pickle.loads(pickle.dumps(obj))),
)
def test_no_transition_copies_are_identical(copy_func):
    assert copy_func(NO_TRANSITION) is NO_TRANSITION


def test_no_transition_not_none():
    assert NO_TRANSITION is not None
    assert not NO_TRANSITION
    assert repr(NO_TRANSITION) == "NO_TRANSITION"


class TestPresizedContainer:
    n_sample = 4

    @pytest.fixture
    def container(self):
        return TransitionContainer(self.n_sample)

    def test_attributes(self, container):
        assert container.is_presized
        assert container.n_saved == 0
        assert len(container) == self.n_sample

    def test_save_at_fixed_index(self, container):
        for iteration in range(1, self.n_sample + 1):
            container.save(iteration, iteration * 10)
        assert container.n_saved == self.n_sample
        assert container.to_list() == [10, 20, 30, 40]
        assert container[0] == 10
        assert container[-1] == 40
        assert container[1:3] == [20, 30]

    def test_save_out_of_order(self, container):
        container.save(3, "c")
        container.save(1, "a")
        assert container.n_saved == 2
        assert container[2] == "c"
        with pytest.raises(IndexError, match="No transition saved"):
            container[1]
        assert list(container) == ["a"]

    @pytest.mark.parametrize("iteration", (0, n_sample + 1))
    def test_save_out_of_range_raises(self, container, iteration):
        with pytest.raises(IndexError, match="outside of range"):
            container.save(iteration, None)

    def test_overwrite_does_not_change_count(self, container):
        container.save(1, "a")
        container.save(1, "b")
        assert container.n_saved == 1
        assert container[0] == "b"

    def test_pickle_partially_filled(self, container):
        container.save(1, "a")
        unpickled = pickle.loads(pickle.dumps(container))
        assert unpickled.n_saved == 1
        assert list(unpickled) == ["a"]
        with pytest.raises(IndexError):
            unpickled[1]


class TestGrowableContainer:
    @pytest.fixture
    def container(self):
        return TransitionContainer()

    def test_attributes(self, container):
        assert not container.is_presized
        assert len(container) == 0

    def test_save_appends(self, container):
        for iteration in range(1, 6):
            container.save(iteration, iteration)
            assert len(container) == iteration
            assert container.n_saved == iteration
        assert container.to_list() == [1, 2, 3, 4, 5]

    @pytest.mark.parametrize("iteration", (0, 2, 3))
    def test_save_out_of_order_raises(self, container, iteration):
        with pytest.raises(IndexError, match="does not follow"):
            container.save(iteration, None)

    def test_is_sequence(self, container):
        container.save(1, "a")
        container.save(2, "b")
        assert "b" in container
        assert container.index("b") == 1
        assert list(reversed(container)) == ["b", "a"]
