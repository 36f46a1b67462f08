"""Harness for running iterative stochastic samplers over one or many chains."""

__authors__ = "Matt Graham"
__license__ = "MIT"

import chainkit.bundling
import chainkit.ensembles
import chainkit.errors
import chainkit.progressbars
import chainkit.protocol
import chainkit.samplers
import chainkit.transitions
from chainkit.ensembles import EnsembleMode, sample_chains
from chainkit.interface import sample_ensemble, sample_model
from chainkit.progressbars import get_progress, set_progress
from chainkit.protocol import AbstractModel, AbstractSampler, register_step
from chainkit.samplers import sample, sample_chain, sample_chain_until
from chainkit.transitions import NO_TRANSITION, TransitionContainer
