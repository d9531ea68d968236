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

import sys

from hostcooc import __author__, __copyright__, __version__
from hostcooc.cli import parse_cli

COMMANDS = {'thresholds', 'score', 'plot', 'sparse', 'embed', 'diversity', 'metadata'}


def print_help():
    print('''\

  hostcooc v%s

  Main dish:
    thresholds -> Count host, pathogen and shared datasets over a grid of abundance thresholds.

  Sides:
    score     -> Hypergeometric and log-odds scores, interaction labels, ROC/AUC per threshold.
    plot      -> Redraw ROC curves, AUC heatmaps and log-odds histograms from scored pairs.

  Data preparation:
    sparse    -> Export abundance records as a sparse COO matrix.
    embed     -> Random-projection embeddings of taxa and datasets.
    diversity -> Per-dataset alpha diversity.
    metadata  -> Extract metadata rows for the datasets behind host-pathogen pairs.

  Use: hostcooc <command> -h for command specific help
    ''' % __version__)


def main():
    if len(sys.argv) == 1:
        print_help()
        sys.exit(0)
    elif sys.argv[1] in {'-v', '--v', '-version', '--version'}:
        print(f"hostcooc: version {__version__} {__copyright__} {__author__}")
        sys.exit(0)
    elif sys.argv[1] in {'-h', '--h', '-help', '--help'}:
        print_help()
        sys.exit(0)
    elif sys.argv[1] not in COMMANDS:
        print("program not on the menu, choose from the options listed below ")
        print_help()
        sys.exit(1)
    else:
        parse_cli()


if __name__ == "__main__":
    main()
