from __future__ import annotations

import pathlib
import tempfile
import unittest

from codecgen import generate, load_directory, runtime
from codecgen.errors import MissingFieldError
from codecgen.generator import compute_digest, extract_existing_digest, render_file

from helpers import ImportRoot, generate_code, write_sources

ITEM = """
from dataclasses import dataclass, field


@dataclass
class Item:
    id: str
    label: str = field(default="", metadata={"codec": 'optional:"true"'})
    weight: int = field(default=0, metadata={"codec": 'json:"wt"'})
"""


class GeneratorTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = pathlib.Path(self._tmp.name)
        self.imports = ImportRoot(self.root)
        self.imports.__enter__()

    def tearDown(self) -> None:
        self.imports.__exit__(None, None, None)
        self._tmp.cleanup()

    def emit(self, typename: str, module: str, override: str = "", directory: pathlib.Path | None = None) -> str:
        directory = directory or self.root
        code = generate_code(directory, typename, override)
        (directory / f"{module}.py").write_text(code, encoding="utf-8")
        return code


class ItemScenarioTests(GeneratorTestCase):
    def setUp(self) -> None:
        super().setUp()
        write_sources(self.root, {"scenario_models.py": ITEM})
        self.code = self.emit("Item", "scenario_codec")
        self.imports.load("scenario_codec")
        self.Item = self.imports.load("scenario_models").Item

    def test_generated_source(self) -> None:
        self.assertIn("from scenario_models import Item\n", self.code)
        self.assertIn("import codecgen.runtime as codec\n", self.code)
        self.assertIn("class ItemWire:\n", self.code)
        self.assertIn(
            "    weight: typing.Optional[int] = dataclasses.field(default=None, metadata={'codec': 'json:\"wt\"'})\n",
            self.code,
        )
        self.assertIn("        raise errors.MissingFieldError('id', 'JSON Item')\n", self.code)
        self.assertIn("        raise errors.MissingFieldError('weight', 'YAML Item')\n", self.code)
        self.assertNotIn("MissingFieldError('label'", self.code)
        self.assertIn("Item.unmarshal_json = classmethod(_item_unmarshal_json)\n", self.code)
        compile(self.code, "scenario_codec.py", "exec")

    def test_encode_uses_tag_names(self) -> None:
        item = self.Item("x1", "hello", 5)
        self.assertEqual(item.marshal_json(), {"id": "x1", "label": "hello", "wt": 5})
        self.assertEqual(item.marshal_yaml(), {"id": "x1", "label": "hello", "weight": 5})

    def test_optional_field_may_be_absent(self) -> None:
        self.assertEqual(self.Item.unmarshal_json({"id": "x1", "wt": 5}), self.Item("x1", "", 5))

    def test_required_fields_must_be_present(self) -> None:
        with self.assertRaises(MissingFieldError) as cm:
            self.Item.unmarshal_json({"wt": 5})
        self.assertEqual(cm.exception.field, "id")
        self.assertEqual(str(cm.exception), "missing required field 'id' in JSON Item")

        with self.assertRaises(MissingFieldError) as cm:
            self.Item.unmarshal_json({"id": "x1", "weight": 5})
        self.assertEqual(cm.exception.field, "wt")

        with self.assertRaises(MissingFieldError) as cm:
            self.Item.unmarshal_yaml({"id": "x1", "wt": 5})
        self.assertEqual(str(cm.exception), "missing required field 'weight' in YAML Item")

    def test_present_null_is_not_missing(self) -> None:
        self.assertEqual(self.Item.unmarshal_json({"id": None, "wt": 1}), self.Item("", "", 1))
        self.assertEqual(self.Item.unmarshal_json({"id": "x1", "wt": None}), self.Item("x1", "", 0))

    def test_null_document_reports_missing_field(self) -> None:
        with self.assertRaises(MissingFieldError) as cm:
            self.Item.unmarshal_json(None)
        self.assertEqual(cm.exception.field, "id")

    def test_round_trip_through_text(self) -> None:
        item = self.Item("x1", "hello", 5)
        self.assertEqual(runtime.loads_json(self.Item, runtime.dumps_json(item)), item)
        self.assertEqual(runtime.loads_yaml(self.Item, runtime.dumps_yaml(item)), item)
        self.assertIn("weight: 5", runtime.dumps_yaml(item))


class RoundTripTests(GeneratorTestCase):
    def test_nested_records_and_containers(self) -> None:
        write_sources(
            self.root,
            {
                "scenario_models.py": ITEM,
                "orders.py": """
                from __future__ import annotations

                import dataclasses
                from typing import Optional

                from scenario_models import Item


                @dataclasses.dataclass
                class Order:
                    number: int
                    items: list[Item]
                    totals: dict[str, float]
                    note: Optional[str] = dataclasses.field(default=None, metadata={"codec": 'optional:"true"'})
                    flags: frozenset[str] = dataclasses.field(default=frozenset(), metadata={"codec": 'optional:"yes"'})
                """,
            },
        )
        self.emit("Item", "item_codec")
        code = self.emit("Order", "order_codec")
        self.assertIn("import scenario_models\n", code)
        self.assertIn("items: typing.Optional[list[scenario_models.Item]]", code)

        self.imports.load("item_codec")
        self.imports.load("order_codec")
        Item = self.imports.load("scenario_models").Item
        Order = self.imports.load("orders").Order

        order = Order(7, [Item("a", "", 1), Item("b", "bee", 2)], {"net": 1.5}, None, frozenset({"rush"}))
        data = order.marshal_json()
        self.assertEqual(data["items"][1], {"id": "b", "label": "bee", "wt": 2})
        self.assertEqual(Order.unmarshal_json(data), order)
        self.assertEqual(runtime.loads_yaml(Order, runtime.dumps_yaml(order)), order)

        with self.assertRaises(MissingFieldError) as cm:
            Order.unmarshal_json({"number": 1, "items": [{"wt": 1}], "totals": {}})
        self.assertEqual(str(cm.exception), "missing required field 'id' in JSON Item")

    def test_optional_field_without_default_gets_zero_value(self) -> None:
        write_sources(
            self.root,
            {
                "bags.py": """
                from dataclasses import dataclass, field


                @dataclass
                class Bag:
                    tags: list[str] = field(metadata={"codec": 'optional:"true"'})
                    count: int = field(metadata={"codec": 'optional:"true"'})
                """
            },
        )
        self.emit("Bag", "bag_codec")
        self.imports.load("bag_codec")
        Bag = self.imports.load("bags").Bag
        self.assertEqual(Bag.unmarshal_json({}), Bag([], 0))

    def test_record_without_fields(self) -> None:
        write_sources(
            self.root,
            {
                "markers.py": """
                import dataclasses


                @dataclasses.dataclass
                class HTTPMarker:
                    pass
                """
            },
        )
        code = self.emit("HTTPMarker", "marker_codec")
        self.assertIn("class HTTPMarkerWire:\n    pass\n", code)
        self.assertIn("def _http_marker_marshal_yaml(x: HTTPMarker)", code)
        self.imports.load("marker_codec")
        HTTPMarker = self.imports.load("markers").HTTPMarker
        self.assertEqual(HTTPMarker().marshal_json(), {})
        self.assertEqual(HTTPMarker.unmarshal_yaml({"ignored": 1}), HTTPMarker())

    def test_package_sources(self) -> None:
        write_sources(
            self.root,
            {
                "shop/__init__.py": "",
                "shop/units.py": """
                class Meters(float):
                    pass
                """,
                "shop/models.py": """
                from dataclasses import dataclass
                from typing import NewType

                from .units import Meters

                UserId = NewType("UserId", int)


                @dataclass
                class Parcel:
                    owner: UserId
                    dist: Meters
                """,
            },
        )
        code = self.emit("Parcel", "parcel_codec", directory=self.root / "shop")
        self.assertIn("import shop.units as units\n", code)
        self.assertIn("from shop.models import Parcel, UserId\n", code)

        self.imports.load("shop.parcel_codec")
        models = self.imports.load("shop.models")
        parcel = models.Parcel(models.UserId(3), self.imports.load("shop.units").Meters(1.5))
        self.assertEqual(parcel.marshal_json(), {"owner": 3, "dist": 1.5})
        decoded = models.Parcel.unmarshal_json({"owner": 3, "dist": 1.5})
        self.assertEqual(decoded, parcel)
        self.assertEqual(type(decoded.dist).__name__, "Meters")


class OverrideTests(GeneratorTestCase):
    SOURCES = {
        "readings.py": """
        from dataclasses import dataclass


        class Hex(int):
            def marshal_json(self):
                return hex(self)

            @classmethod
            def unmarshal_json(cls, value):
                return cls(int(value, 16))

            marshal_yaml = marshal_json
            unmarshal_yaml = unmarshal_json


        @dataclass
        class Reading:
            id: str
            raw: int


        @dataclass
        class ReadingOverrides:
            raw: Hex


        @dataclass
        class BadOverrides:
            height: int


        @dataclass
        class WrongOverrides:
            id: list[str]
        """
    }

    def test_override_type_is_used_on_the_wire(self) -> None:
        write_sources(self.root, self.SOURCES)
        code = self.emit("Reading", "reading_codec", override="ReadingOverrides")
        self.assertIn("raw: typing.Optional[Hex]", code)
        self.assertIn("raw=Hex(x.raw),", code)
        self.assertIn("kw['raw'] = int(dec.raw)", code)

        self.imports.load("reading_codec")
        Reading = self.imports.load("readings").Reading
        self.assertEqual(Reading("r1", 255).marshal_json(), {"id": "r1", "raw": "0xff"})
        decoded = Reading.unmarshal_yaml({"id": "r1", "raw": "0x10"})
        self.assertEqual(decoded, Reading("r1", 16))
        self.assertIs(type(decoded.raw), int)

    def test_override_errors(self) -> None:
        write_sources(self.root, self.SOURCES)
        loader = load_directory(self.root)

        result = generate(loader, "Reading", "BadOverrides")
        self.assertFalse(result.ok)
        self.assertIsNone(result.code)
        self.assertEqual(str(result.error), "no matching field for height in original record Reading")
        self.assertTrue(result.error.describe().startswith(str(self.root / "readings.py") + ":"))

        result = generate(loader, "Reading", "WrongOverrides")
        self.assertEqual(str(result.error), "field override type list[str] is not convertible to str")

        result = generate(loader, "Reading", "Nope")
        self.assertEqual(str(result.error), "can't find field override record Nope: no such identifier")

        result = generate(loader, "Missing")
        self.assertEqual(str(result.error), "can't find Missing: no such identifier")


class NamespaceCollisionTests(GeneratorTestCase):
    def test_same_named_modules_get_distinct_aliases(self) -> None:
        write_sources(
            self.root,
            {
                "alpha/__init__.py": "",
                "alpha/util.py": """
                class Thing(str):
                    pass
                """,
                "beta/__init__.py": "",
                "beta/util.py": """
                class Thing(int):
                    pass
                """,
                "pairs.py": """
                from dataclasses import dataclass

                from alpha import util
                from beta import util as butil


                @dataclass
                class Pair:
                    a: util.Thing
                    b: butil.Thing
                """,
            },
        )
        code = self.emit("Pair", "pair_codec")
        self.assertIn("import alpha.util as util\nimport beta.util as _util\n", code)
        self.assertIn("a: typing.Optional[util.Thing]", code)
        self.assertIn("b: typing.Optional[_util.Thing]", code)

        self.imports.load("pair_codec")
        pairs = self.imports.load("pairs")
        pair = pairs.Pair(pairs.util.Thing("s"), pairs.butil.Thing(3))
        self.assertEqual(pair.marshal_json(), {"a": "s", "b": 3})
        decoded = pairs.Pair.unmarshal_json({"a": "s", "b": 3})
        self.assertEqual(decoded, pair)
        self.assertIsInstance(decoded.b, pairs.butil.Thing)


class FieldExclusionTests(GeneratorTestCase):
    def test_hidden_and_inherited_fields_are_not_encoded(self) -> None:
        write_sources(
            self.root,
            {
                "accounts.py": """
                from dataclasses import dataclass, field


                @dataclass
                class Base:
                    created: str = ""


                @dataclass
                class Account(Base):
                    name: str = ""
                    _token: str = ""
                    cache: dict[str, int] = field(default_factory=dict, init=False)
                """
            },
        )
        result = generate(load_directory(self.root), "Account")
        self.assertTrue(result.ok, result.error)
        self.assertEqual(len(result.warnings), 1)
        self.assertTrue(str(result.warnings[0]).endswith("warning: (Account.Base) ignoring embedded field"))
        wire_block = result.code.split("class AccountWire:\n", 1)[1].split("\n\n", 1)[0]
        self.assertEqual(wire_block.count("dataclasses.field("), 1)
        self.assertIn("name:", wire_block)

        (self.root / "account_codec.py").write_text(result.code, encoding="utf-8")
        self.imports.load("account_codec")
        Account = self.imports.load("accounts").Account
        account = Account(created="yesterday", name="n", _token="t")
        self.assertEqual(account.marshal_json(), {"name": "n"})
        self.assertEqual(Account.unmarshal_json({"name": "n", "created": "x"}), Account(name="n"))

    def test_constructor_fields_without_defaults_are_zero_filled(self) -> None:
        write_sources(
            self.root,
            {
                "ledger.py": """
                from dataclasses import dataclass


                @dataclass
                class Base:
                    created: str


                @dataclass
                class Account(Base):
                    name: str
                    _secret: str
                """
            },
        )
        self.emit("Account", "ledger_codec")
        self.imports.load("ledger_codec")
        Account = self.imports.load("ledger").Account
        self.assertEqual(Account.unmarshal_json({"name": "n"}), Account("", "n", ""))
        self.assertEqual(Account.unmarshal_yaml({"name": "n", "_secret": "s"}), Account("", "n", ""))

    def test_dash_comma_tag_uses_dash_key(self) -> None:
        write_sources(
            self.root,
            {
                "marks.py": """
                from dataclasses import dataclass, field


                @dataclass
                class Mark:
                    dash: str = field(default="", metadata={"codec": 'json:"-,"'})
                """
            },
        )
        self.emit("Mark", "mark_codec")
        self.imports.load("mark_codec")
        Mark = self.imports.load("marks").Mark
        self.assertEqual(Mark("d").marshal_json(), {"-": "d"})
        self.assertEqual(Mark.unmarshal_json({"-": "e"}), Mark("e"))
        self.assertEqual(Mark("d").marshal_yaml(), {"dash": "d"})


class EnumFieldTests(GeneratorTestCase):
    def test_enum_without_default_decodes_when_absent(self) -> None:
        write_sources(
            self.root,
            {
                "paints.py": """
                import enum
                from dataclasses import dataclass, field


                class Color(str, enum.Enum):
                    RED = "red"
                    BLUE = "blue"


                @dataclass
                class Paint:
                    color: Color = field(metadata={"codec": 'optional:"true"'})
                """
            },
        )
        code = self.emit("Paint", "paint_codec")
        self.assertNotIn("Color('')", code)
        self.imports.load("paint_codec")
        paints = self.imports.load("paints")
        self.assertEqual(paints.Paint.unmarshal_json({}), paints.Paint(None))
        self.assertEqual(paints.Paint.unmarshal_json({"color": "red"}), paints.Paint(paints.Color.RED))
        self.assertEqual(paints.Paint(paints.Color.BLUE).marshal_json(), {"color": "blue"})


class HeaderTests(unittest.TestCase):
    def test_output_is_deterministic(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            tmp = pathlib.Path(td)
            write_sources(tmp, {"scenario_models.py": ITEM})
            first = generate_code(tmp, "Item")
            second = generate_code(tmp, "Item")
        self.assertEqual(first, second)
        self.assertTrue(first.startswith("# Code generated by codecgen. DO NOT EDIT.\n# source: test\n# type: Item\n"))

    def test_digest_covers_the_body(self) -> None:
        text = render_file("x = 1\n", "Item", "models")
        self.assertEqual(extract_existing_digest(text), compute_digest("x = 1\n"))
        self.assertNotEqual(compute_digest("x = 1\n"), compute_digest("x = 2\n"))
        self.assertIsNone(extract_existing_digest("x = 1\n"))


if __name__ == "__main__":
    unittest.main()
