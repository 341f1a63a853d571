# -*- coding: utf-8 -*-
"""
fabisearch.exceptions
=====================

Error taxonomy of the change point procedure.

Input problems are fatal and raised before any factorization runs.
A degenerate permutation distribution only ends the search of the
segment it occurred in, and a segment too short to split simply stops
recursing.
"""

from sklearn.exceptions import ConvergenceWarning as _SklearnConvergenceWarning


class FaBiSearchError(Exception):
    """Base class for every error raised by fabisearch."""


class InvalidInputError(FaBiSearchError, ValueError):
    """The time series or an option value violates a precondition."""


class InvalidRankError(FaBiSearchError, ValueError):
    """A requested or candidate rank does not fit the segment."""


class DegenerateNullError(FaBiSearchError):
    """The permutation comparison has no variance to test against."""


class InsufficientDataError(FaBiSearchError):
    """A segment is too short to hold a split at least mindist from both ends."""


class ConvergenceWarning(_SklearnConvergenceWarning):
    """Some NMF restarts reached the iteration limit before converging."""
