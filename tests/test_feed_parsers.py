"""Tests for the status.txt and whazzup.txt parsers."""

from datetime import datetime, timezone

import pytest

from onlinedata.config import FacilityType, OnlineFormat
from onlinedata.feed import parse_status, parse_whazzup
from onlinedata.feed.whazzup import parse_timestamp

from conftest import DEFAULT_CLIENTS, SERVERS_TEXT, client_line, make_status, make_whazzup


class TestStatus:

    def test_urls_and_message(self):
        doc = parse_status(make_status(message='Hello pilots'))

        assert doc.whazzup_url() == ('http://data.test/whazzup.txt', False)
        assert doc.voice_url == 'http://data.test/servers.txt'
        assert doc.message == 'Hello pilots'
        assert doc.metar_urls == ['http://metar.test/metar.html']

    def test_gzip_url_takes_precedence(self):
        doc = parse_status(make_status(gz_url='http://data.test/whazzup.txt.gz'))
        assert doc.whazzup_url() == ('http://data.test/whazzup.txt.gz', True)

    def test_first_url_is_used(self):
        doc = parse_status('url0=http://a.test/w.txt\nurl0=http://b.test/w.txt\n')
        assert doc.whazzup_urls == ['http://a.test/w.txt', 'http://b.test/w.txt']
        assert doc.whazzup_url() == ('http://a.test/w.txt', False)

    def test_empty_and_garbage(self):
        for text in ('', None, '<html>nothing here</html>', '; only a comment\n'):
            doc = parse_status(text)
            assert doc.whazzup_url() == ('', False)
            assert doc.voice_url == ''
            assert doc.message == ''

    def test_keys_are_case_insensitive(self):
        doc = parse_status('URL0 = http://a.test/w.txt\r\nMSG0=Line\r\n')
        assert doc.whazzup_url() == ('http://a.test/w.txt', False)
        assert doc.message == 'Line'


class TestWhazzup:

    def test_general_section(self):
        doc = parse_whazzup(make_whazzup(DEFAULT_CLIENTS, update='20240315083000', reload=5))

        assert doc.version == 8
        assert doc.reload_minutes == 5
        assert doc.update_time == datetime(2024, 3, 15, 8, 30, tzinfo=timezone.utc)
        assert doc.connected_clients == 4

    def test_pilots_and_controllers(self):
        doc = parse_whazzup(make_whazzup(DEFAULT_CLIENTS))

        assert [p.callsign for p in doc.pilots] == ['DLH123', 'N12345', 'BAW1']
        assert [a.callsign for a in doc.atcs] == ['EDDF_TWR']

        pilot = doc.pilots[0]
        assert pilot.latitude == pytest.approx(50.03)
        assert pilot.longitude == pytest.approx(8.57)
        assert pilot.altitude_ft == 35000
        assert pilot.groundspeed_kts == 450
        assert pilot.heading == 90
        assert pilot.aircraft_type == 'B738'
        assert pilot.departure == 'EDDF'
        assert pilot.destination == 'KJFK'
        assert pilot.on_ground is False
        assert pilot.logon_time == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)

        atc = doc.atcs[0]
        assert atc.facility_type == FacilityType.TOWER
        assert atc.visual_range == 50
        assert atc.frequency == '118.500'

    def test_atis_lines(self):
        line = client_line('EDDF_ATIS', 50.0, 8.5, client_type='ATC', atis='EDDF ATIS A^§RWY 25C^§QNH 1013')
        doc = parse_whazzup(make_whazzup([line]))
        assert doc.atcs[0].atis == ['EDDF ATIS A', 'RWY 25C', 'QNH 1013']

    def test_client_without_position(self):
        doc = parse_whazzup(make_whazzup([client_line('PREFILE')]))
        assert not doc.pilots[0].has_position

    def test_short_and_empty_lines(self):
        doc = parse_whazzup(make_whazzup(['SHORT:1:', ':::::', '']))
        assert [c.callsign for c in doc.clients] == ['SHORT']

    def test_ivao_columns(self):
        fields = [''] * 47
        fields[0], fields[3], fields[5], fields[6] = 'IVA1', 'PILOT', '10.0', '20.0'
        fields[38], fields[45], fields[46] = '999', '180', '1'
        doc = parse_whazzup(make_whazzup([':'.join(fields)]), OnlineFormat.IVAO)

        client = doc.clients[0]
        assert client.heading == 180
        assert client.on_ground is True

        doc = parse_whazzup(make_whazzup([':'.join(fields)]), OnlineFormat.VATSIM)
        assert doc.clients[0].heading == 999
        assert doc.clients[0].on_ground is False

    def test_server_sections(self):
        doc = parse_whazzup(SERVERS_TEXT)

        assert [s.ident for s in doc.servers] == ['EUROPE-C2', 'USA-E', 'voice.test.net']
        voice = doc.servers[-1]
        assert voice.is_voice
        assert voice.voice_type == 'R'
        assert voice.location == 'Europe'
        assert not doc.servers[0].is_voice
        assert doc.servers[0].hostname == '88.198.19.202'

    def test_not_a_feed_raises(self):
        with pytest.raises(ValueError):
            parse_whazzup('<html>502 Bad Gateway</html>')
        with pytest.raises(ValueError):
            parse_whazzup('')

    def test_is_newer_than(self):
        doc = parse_whazzup(make_whazzup([], update='20240101120000'))

        assert doc.is_newer_than(None)
        assert doc.is_newer_than(datetime(2024, 1, 1, 11, 59, tzinfo=timezone.utc))
        assert not doc.is_newer_than(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))
        assert not doc.is_newer_than(datetime(2024, 1, 1, 12, 1, tzinfo=timezone.utc))

    def test_bad_numbers_drop_the_field_only(self):
        clients = [
            client_line('DLH123', 50.03, 8.57),
            client_line('BAW1', 51.47, -0.45, groundspeed='nan'),
            client_line('AFR22', 49.0, 2.55, altitude='1e999', heading='inf'),
            client_line('UAL9', 40.6, -73.8, altitude='99999999999999999999'),
        ]
        doc = parse_whazzup(make_whazzup(clients))

        assert [c.callsign for c in doc.clients] == ['DLH123', 'BAW1', 'AFR22', 'UAL9']
        assert doc.clients[0].groundspeed_kts == 450
        assert doc.clients[1].groundspeed_kts is None
        assert doc.clients[1].altitude_ft == 35000
        assert doc.clients[2].altitude_ft is None
        assert doc.clients[2].heading is None
        assert doc.clients[3].altitude_ft is None

    def test_nan_position_is_no_position(self):
        doc = parse_whazzup(make_whazzup([client_line('DLH123', 'nan', 8.57)]))
        assert not doc.clients[0].has_position


def test_parse_timestamp():
    assert parse_timestamp('20240101120000') == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
    assert parse_timestamp('') is None
    assert parse_timestamp('garbage') is None
