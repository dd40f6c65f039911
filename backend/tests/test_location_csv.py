# tests/test_location_csv.py
# CSV 导入导出测试

import csv
import io

from expo_admin.services.location_csv import EXPORT_HEADERS, parse_location_csv, render_location_csv


class TestParseLocationCsv:
    """CSV 解析"""

    def test_export_headers(self):
        text = (
            "Country,Country Code,State,State Code,City,PIN Code,Area,Usage Count,Active\n"
            "India,IN,Gujarat,GJ,Ahmedabad,380001,Ellis Bridge,3,Yes\n"
        )

        rows = parse_location_csv(text)

        assert len(rows) == 1
        row = rows[0]
        assert row.country == "India"
        assert row.country_code == "IN"
        assert row.state_code == "GJ"
        assert row.city == "Ahmedabad"
        assert row.pincode == "380001"
        assert row.area == "Ellis Bridge"

    def test_header_aliases_and_bom(self):
        text = "\ufeffcountryCode,state_code,CITY,Postal Code,Notes\nin,gj,Surat,395001,\n"

        rows = parse_location_csv(text)

        assert rows[0].country_code == "in"
        assert rows[0].state_code == "gj"
        assert rows[0].city == "Surat"
        assert rows[0].pincode == "395001"

    def test_blank_values_become_none(self):
        rows = parse_location_csv("Country Code,State Code,City,PIN Code,Area\nIN,GJ,Surat,395001,  \n")

        assert rows[0].area is None
        assert rows[0].country is None

    def test_empty_rows_and_unknown_columns_ignored(self):
        text = "Country Code,Notes,City,PIN Code\nIN,hello,Surat,395001\n,,,\n,ignored,,\n"

        rows = parse_location_csv(text)

        assert len(rows) == 1
        assert rows[0].city == "Surat"

    def test_empty_text(self):
        assert parse_location_csv("") == []


class TestRenderLocationCsv:
    """CSV 导出"""

    def test_render(self):
        text = render_location_csv([
            {
                "country": "India",
                "country_code": "IN",
                "state": "Gujarat",
                "state_code": "GJ",
                "city": "Ahmedabad",
                "pincode": "380001",
                "area": "Ellis Bridge, West",
                "usage_count": 4,
                "is_active": False,
            }
        ])

        records = list(csv.reader(io.StringIO(text)))
        assert records[0] == EXPORT_HEADERS
        assert records[1] == [
            "India", "IN", "Gujarat", "GJ", "Ahmedabad", "380001", "Ellis Bridge, West", "4", "No",
        ]

    def test_export_can_be_imported_again(self):
        exported = render_location_csv([
            {
                "country": "India",
                "country_code": "IN",
                "state": "Gujarat",
                "state_code": "GJ",
                "city": "Ahmedabad",
                "pincode": "380001",
                "area": "",
                "usage_count": 0,
                "is_active": True,
            }
        ])

        rows = parse_location_csv(exported)

        assert rows[0].pincode == "380001"
        assert rows[0].area is None
