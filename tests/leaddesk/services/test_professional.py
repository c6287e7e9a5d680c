"""Tests for leaddesk.services.professional — current employer, tenure, business status."""
from datetime import date

import pytest

from leaddesk.services.professional import (
    has_exit_date, tenure_years, format_current_tenure, format_employer_tenure,
    select_current_employment, employment_type, active_business, reconcile, reconcile_payload,
)

NOW = date(2025, 1, 1)


class TestHasExitDate:
    @pytest.mark.parametrize('value', [None, '', 'N/A', 'n/a', '  '])
    def test_placeholders_mean_no_exit(self, value):
        assert not has_exit_date({'date_of_exit': value})

    def test_missing_key(self):
        assert not has_exit_date({})

    def test_real_date(self):
        assert has_exit_date({'date_of_exit': '2019-05-31'})


class TestTenure:
    def test_fractional_years(self):
        assert tenure_years('2020-01-01', '2022-07-01') == 2.5

    def test_until_now(self):
        assert tenure_years('2022-01-01', now=NOW) == 3.0

    def test_unparseable_start(self):
        assert tenure_years('sometime', now=NOW) is None

    def test_unparseable_end(self):
        assert tenure_years('2020-01-01', 'later') is None

    def test_current_tenure_text(self):
        assert format_current_tenure('2022-08-15', now=NOW) == 'Since Aug 2022 (2.4 years)'

    def test_current_tenure_none_for_bad_date(self):
        assert format_current_tenure(None, now=NOW) is None

    def test_employer_tenure_na(self):
        assert format_employer_tenure('bad', '2020-01-01') == 'N/A'


class TestSelectCurrentEmployment:
    def test_single_open_record(self):
        records = [
            {'employer_name': 'TCS', 'date_of_exit': '2019-05-31'},
            {'employer_name': 'Infosys', 'date_of_exit': 'N/A'},
        ]
        assert select_current_employment(records)['employer_name'] == 'Infosys'

    def test_none_open(self):
        assert select_current_employment([{'employer_name': 'TCS', 'date_of_exit': '2019-05-31'}]) is None

    def test_empty(self):
        assert select_current_employment([]) is None

    def test_several_open_picks_latest_joining(self):
        records = [
            {'employer_name': 'Old', 'date_of_joining': '2010-01-01'},
            {'employer_name': 'New', 'date_of_joining': '2021-01-01'},
            {'employer_name': 'Mid', 'date_of_joining': '2015-01-01'},
        ]
        assert select_current_employment(records)['employer_name'] == 'New'

    def test_several_open_undated_keep_array_order(self):
        records = [{'employer_name': 'First'}, {'employer_name': 'Second'}]
        assert select_current_employment(records)['employer_name'] == 'First'

    def test_dated_beats_undated(self):
        records = [{'employer_name': 'Undated'}, {'employer_name': 'Dated', 'date_of_joining': '2001-01-01'}]
        assert select_current_employment(records)['employer_name'] == 'Dated'


class TestEmploymentType:
    @pytest.mark.parametrize('designation,expected', [
        ('Salaried, Infosys', 'Salaried'),
        ('SALARIED', 'Salaried'),
        ('Self Employed Professional', 'Self-Employed'),
        ('Business Owner', 'Self-Employed'),
        ('Retired', 'Retired'),
    ])
    def test_keywords(self, designation, expected):
        assert employment_type({'designation': designation}) == expected

    def test_absent(self):
        assert employment_type(None) == 'N/A'
        assert employment_type({}) == 'N/A'


class TestActiveBusiness:
    def test_none_when_no_records(self):
        assert active_business([]) is None
        assert active_business(None) is None

    def test_inactive_when_none_active(self):
        assert active_business([{'business_name': 'Acme', 'status': 'Cancelled'}]) == 'Inactive'

    def test_formats_active(self):
        record = {'business_name': 'Acme Traders', 'industry': 'Retail', 'turnover_slab': '1-5 Cr', 'status': 'ACTIVE'}
        assert active_business([record]) == 'Acme Traders - Retail - 1-5 Cr'

    def test_missing_parts_leave_no_stray_separators(self):
        record = {'business_name': 'Acme Traders', 'industry': '', 'turnover_slab': '1-5 Cr', 'status': 'active'}
        assert active_business([record]) == 'Acme Traders - 1-5 Cr'


class TestReconcile:
    def test_payload(self, mql_document):
        profile = reconcile_payload(mql_document['leads'][0], now=NOW)
        assert profile.current_role == 'Senior Manager at Infosys Ltd'
        assert profile.employment_type == 'Salaried'
        assert profile.current_tenure == 'Since Jul 2019 (5.5 years)'
        assert profile.active_business is None
        assert [p.name for p in profile.previous_employers] == ['TCS']
        assert profile.previous_employers[0].tenure == '7.0 years'

    def test_designation_placeholder_without_network_profile(self):
        profile = reconcile([{'employer_name': 'Wipro'}], None, [], None, now=NOW)
        assert profile.current_role == 'Professional at Wipro'

    def test_no_current_employer(self):
        profile = reconcile([], {'current_designation': 'Director'}, [], None, now=NOW)
        assert profile.current_role == 'Director at Unknown'
        assert profile.current_tenure is None

    def test_previous_employers_keep_order(self):
        records = [
            {'employer_name': 'B', 'date_of_joining': '2015-01-01', 'date_of_exit': '2016-01-01'},
            {'employer_name': 'A', 'date_of_joining': '2010-01-01', 'date_of_exit': '2012-01-01'},
        ]
        profile = reconcile(records, None, None, None, now=NOW)
        assert [p.name for p in profile.previous_employers] == ['B', 'A']

    def test_business_dict_wrapped(self):
        lead = {'business_details': {'business_name': 'Acme', 'status': 'active'}}
        assert reconcile_payload(lead, now=NOW).active_business == 'Acme'

    def test_to_dict(self, mql_document):
        data = reconcile_payload(mql_document['leads'][0], now=NOW).to_dict()
        assert data['previous_employers'] == [{'name': 'TCS', 'tenure': '7.0 years'}]
