#!/usr/bin/env python3
###############################################################################
#                                                                             #
#    This program is free software: you can redistribute it and/or modify     #
#    it under the terms of the GNU General Public License as published by     #
#    the Free Software Foundation, either version 3 of the License, or        #
#    (at your option) any later version.                                      #
#                                                                             #
#    This program is distributed in the hope that it will be useful,          #
#    but WITHOUT ANY WARRANTY; without even the implied warranty of           #
#    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the            #
#    GNU General Public License for more details.                             #
#                                                                             #
#    You should have received a copy of the GNU General Public License        #
#    along with this program. If not, see <http://www.gnu.org/licenses/>.     #
#                                                                             #
###############################################################################

"""
exceptions.py

Errors raised by hostcooc. Every one of them is fatal to the current run
except DegenerateComparisonError, which the evaluation loop records as a
missing AUC.
"""


class ConfigurationError(ValueError):
    """A run parameter is unusable."""


class MissingInputError(ConfigurationError, FileNotFoundError):
    """A required input file or directory does not exist."""


class SchemaError(ValueError):
    """An input table lacks a required column or holds the wrong type."""


class ResourceExhaustionError(MemoryError):
    """Memory ran out while aggregating a threshold or chunk."""


class DegenerateComparisonError(ValueError):
    """A threshold combination has no examples of one class."""
