"""Rule engine fallback."""
import pytest

from trip_import.extraction import RULES, ReservationType, Scope, heuristic_extract, infer_scope_and_type_hints, run_rules

RULES_BY_NAME = {rule.name: rule for rule in RULES}


class TestRules:
    @pytest.mark.parametrize(
        "name, text, expected",
        [
            ("airport_pair", "Trecho GRU -> EZE", {"origin": "GRU", "destination": "EZE"}),
            ("labeled_route", "Origem: GIG ... Destino: SSA", {"origin": "GIG", "destination": "SSA"}),
            ("city_arrow", "São Paulo → Buenos Aires", {"origin": "São Paulo", "destination": "Buenos Aires"}),
            ("flight_number", "Voo G3 1234 confirmado", {"flight_number": "G31234"}),
            ("booking_code", "Localizador: ABC123", {"confirmation_code": "ABC123"}),
            ("iso_date", "em 2026-03-10", {"date": "2026-03-10"}),
            ("european_date", "em 10/03/2026", {"date": "2026-03-10"}),
            ("month_name_date", "em 10 de março de 2026", {"date": "2026-03-10"}),
            ("check_in_date", "Check-in: 01/05/2026", {"check_in": "2026-05-01"}),
            ("check_out_date", "Check-out: 04/05/2026", {"check_out": "2026-05-04"}),
            ("time_24h", "partida 07h45", {"time": "07:45"}),
            ("currency_amount", "Total R$ 1.234,56", {"total_amount": 1234.56, "currency_code": "BRL"}),
            ("carrier", "operado por Azul", {"carrier": "AZUL"}),
        ],
    )
    def test_each_rule(self, name, text, expected):
        assert RULES_BY_NAME[name].apply(text) == expected

    def test_labeled_route_ignores_lowercase_words(self):
        assert RULES_BY_NAME["labeled_route"].apply("saída de casa para ver amigos") == {}

    def test_booking_code_requires_label(self):
        assert RULES_BY_NAME["booking_code"].apply("ABC123 somewhere") == {}

    def test_first_rule_wins(self):
        facts = run_rules("GRU-EZE e depois Origem: GIG Destino: SSA")
        assert facts["origin"] == "GRU"

    def test_file_name_fallbacks(self):
        facts = run_rules("sem dados", "latam_LA8084.pdf")

        assert facts["flight_number"] == "LA8084"
        assert facts["carrier"] == "LATAM"


class TestScopeHints:
    def test_no_travel_vocabulary_is_outside_scope(self, grocery_text):
        assert infer_scope_and_type_hints(grocery_text).scope == Scope.OUTSIDE_SCOPE

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("Cartão de embarque voo", ReservationType.FLIGHT),
            ("Reserva de mesa no restaurante", ReservationType.RESTAURANT),
            ("Hotel Fasano check-in", ReservationType.LODGING),
            ("Passagem de ônibus rodoviária", ReservationType.GROUND_TRANSPORT),
        ],
    )
    def test_type_hints(self, text, expected):
        hints = infer_scope_and_type_hints(text)
        assert hints.scope == Scope.TRIP_RELATED
        assert hints.forced_type == expected


class TestHeuristicExtract:
    def test_latam_boarding_pass(self, latam_text):
        payload, scope = heuristic_extract(latam_text, "boarding.txt")

        assert scope == Scope.TRIP_RELATED
        assert payload.metadata.type == ReservationType.FLIGHT
        assert payload.metadata.confidence == 45
        core = payload.core_fields
        assert (core.origin, core.destination) == ("GRU", "EZE")
        assert core.start_date == "2026-03-10"
        assert core.start_time == "14:00"
        assert core.display_name == "LA3405"
        assert core.provider_name == "LATAM"
        assert payload.financial.total_amount == 1234.56
        assert payload.financial.currency_code == "BRL"

    def test_grocery_receipt_is_out_of_scope(self, grocery_text):
        payload, scope = heuristic_extract(grocery_text, "nota.txt")

        assert scope == Scope.OUTSIDE_SCOPE
        assert payload.metadata.type is None
        assert payload.core_fields.origin is None

    def test_lodging_uses_file_name_and_trip_destination(self):
        text = "Hotel Fasano\nCheck-in: 01/05/2026\nCheck-out: 04/05/2026\nTotal R$ 2.450,00"

        payload, scope = heuristic_extract(text, "hotel_fasano-reserva.pdf", trip_destination="Rio de Janeiro")

        assert payload.metadata.type == ReservationType.LODGING
        assert payload.core_fields.display_name == "hotel fasano reserva"
        assert payload.core_fields.start_date == "2026-05-01"
        assert payload.core_fields.end_date == "2026-05-04"
        assert payload.core_fields.destination == "Rio de Janeiro"
