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

__author__ = 'hostcooc developers'
__copyright__ = 'Copyright 2025'
__credits__ = ['hostcooc developers']
__description__ = 'Host-pathogen co-occurrence across sequencing dataset collections'
__license__ = 'GPL3'
__name__ = 'hostcooc'
__python_requires__ = '>=3.8'
__status__ = 'development'
__title__ = 'hostcooc'
__version__ = '0.1.0'
