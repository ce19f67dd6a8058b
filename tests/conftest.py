"""
Shared pytest fixtures for the capacity dashboard test suite.

All fixtures build small in-memory roster/allocation tables shaped like the
published sheets (every cell a string). Nothing here touches the network.

Import-path bootstrapping:
    The repository root is inserted into sys.path so that ``core`` and ``api``
    resolve without an editable install.
"""

import os
import sys
from datetime import date

import pandas as pd
import pytest

_ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _ROOT_DIR not in sys.path:
    sys.path.insert(0, _ROOT_DIR)


ALLOCATION_HEADER = ["Resource", "Name", "Project (from Task)", "Estimated Hours", "Start Date", "End Date", "Month"]


def allocation_row(resource, task, project, hours, start, end, month=""):
    return dict(zip(ALLOCATION_HEADER, [resource, task, project, hours, start, end, month]))


@pytest.fixture
def roster_raw():
    """
    Three rostered people over two departments:
      Jane Doe  Eng  80%  (entered with a % sign)
      John Smith Ops 0.5  (entered as a ratio)
      Ann Lee   Eng  50   (entered on a 0-100 scale)
    """
    return pd.DataFrame(
        [
            {"Name": "Doe, Jane", "Department": "Eng", "Title": "Engineer", "Percentage Billable": "80%"},
            {"Name": "Smith, John", "Department": "Ops", "Title": "Analyst", "Percentage Billable": "0.5"},
            {"Name": " Lee ,  Ann ", "Department": "Eng", "Title": "Lead", "Percentage Billable": "50"},
        ]
    )


@pytest.fixture
def allocations_raw():
    """
    January 2025 bookings (23 business days) plus one February row.

    Jane:  ProjX 100h billable, Vacation [PTO] 16h
    John:  Ops [INT] 8h, ProjY 40h over 01/06-01/17 (10 business days), PNB 10h
    Ann:   Cloud [ENV] 20h
    Ghost: not on the roster
    """
    return pd.DataFrame(
        [
            allocation_row("Jane Doe", "ProjX: Build", "ProjX: Build", "100", "01/01/2025", "01/10/2025", "Jan 2025"),
            allocation_row("Jane Doe", "Vacation", "Vacation [PTO]", "16", "01/13/2025", "01/14/2025", "Jan 2025"),
            allocation_row("John Smith", "Team sync", "Ops [INT]", "8", "01/06/2025", "01/10/2025", "Jan 2025"),
            allocation_row("John Smith", "Client work", "ProjY: Support", "40", "01/06/2025", "01/17/2025", "Jan 2025"),
            allocation_row("John Smith", "Sales", "PNB: Proposal", "10", "01/06/2025", "01/10/2025", "Jan 2025"),
            allocation_row("Ann Lee", "Infra", "Cloud [ENV]", "20", "01/06/2025", "01/10/2025", "Jan 2025"),
            allocation_row("Ghost Person", "Misc", "ProjZ: Misc", "30", "01/06/2025", "01/10/2025", "Jan 2025"),
            allocation_row("Jane Doe", "Feb work", "ProjX: Build", "50", "02/03/2025", "02/07/2025", "Feb 2025"),
        ]
    )


@pytest.fixture
def data_ctx(roster_raw, allocations_raw):
    from core.data import build_data_context

    return build_data_context(roster_raw, allocations_raw, sources=("roster.csv", "allocations.csv"), reference_year=2025)


@pytest.fixture
def jane_scenario_ctx():
    """Single-employee scenario: 100h between 01/01/2025 and 01/10/2025 (8 business days)."""
    from core.data import build_data_context

    roster = pd.DataFrame(
        [{"Name": "Doe, Jane", "Department": "Eng", "Title": "Engineer", "Percentage Billable": "80%"}]
    )
    allocations = pd.DataFrame(
        [
            {
                "Resource": "Jane Doe",
                "Name": "ProjX: Build",
                "Project (from Task)": "ProjX: Build",
                "Estimated Hours": "100",
                "Start Date": "01/01/2025",
                "End Date": "01/10/2025",
            }
        ]
    )
    return build_data_context(roster, allocations, reference_year=2025)


@pytest.fixture
def jan_range():
    return {"filter_mode": "dateRange", "start_date": date(2025, 1, 1), "end_date": date(2025, 1, 10)}
