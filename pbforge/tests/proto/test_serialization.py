"""Tests for generated message serialization"""

import os

from pytest import raises

from pbforge.generator import load
from pbforge.generator.python import GeneratorOptions, render
from pbforge.proto.serialization import DecodeError

FILE_DIR = os.path.dirname(os.path.realpath(__file__))


def gen_code(file_name):
    gbl = globals().copy()

    schema = load(file_name)
    generated_code = render(schema, GeneratorOptions(runtime_import="pbforge.proto"))
    exec(generated_code, gbl)
    return gbl


def describe_serialization():
    def test_simple_message(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Address = gen["Address"]

        address = Address(street="x", zip=1)
        data = address.to_bytes()
        expect(data) == b"\x0a\x01x\x10\x01"
        expect(address.size()) == len(data)
        expect(Address.from_bytes(data)) == address

    def test_full_message_round_trip(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]
        Address = gen["Address"]
        Color = gen["Color"]
        Nickname = gen["Person_Nickname"]
        Email = gen["Person_Email"]

        person = Person(
            name="Ada",
            id=-1,
            active=True,
            score=2.25,
            avatar=b"\x00\x01\x02",
            color=Color.GREEN,
            address=Address(street="Main", zip=12345),
            lucky=[7, 0, 300],
            tags=["a", "", "c"],
            previous=[Address(street="Old"), Address()],
            counts={"x": 1, "y": 0},
            places={3: Address(street="Home")},
            delta=-5,
            checksum=0xDEADBEEF,
            contact=Email(email="ada@example.com"),
            unpacked=[1, -2],
            ratio=0.5,
            palette=[Color.RED, Color.GREEN],
            nickname=Nickname(label="countess"),
        )

        data = person.to_bytes()
        expect(person.size()) == len(data)

        recovered = Person.from_bytes(data)
        expect(recovered) == person
        expect(recovered.color) == Color.GREEN
        expect(recovered.get_email()) == "ada@example.com"

    def test_negative_and_large_integers(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]

        person = Person(id=-(2**31), delta=-(2**63), checksum=2**32 - 1)
        data = person.to_bytes()
        expect(person.size()) == len(data)
        expect(Person.from_bytes(data)) == person

    def test_nested_type_names(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]
        Nickname = gen["Person_Nickname"]

        person = Person(nickname=Nickname(label="n"))
        # field 21, length 3, nested field 1 = "n"
        expect(person.to_bytes()) == b"\xaa\x01\x03\x0a\x01n"


def describe_defaults():
    def test_default_message_is_empty(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]

        expect(Person().to_bytes()) == b""
        expect(Person().size()) == 0

    def test_zero_values_are_not_written(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]
        Color = gen["Color"]

        person = Person(
            name="",
            id=0,
            active=False,
            score=0.0,
            avatar=b"",
            color=Color.COLOR_UNSPECIFIED,
            lucky=[],
            counts={},
        )
        expect(person.to_bytes()) == b""
        expect(person.size()) == 0

    def test_empty_nested_message_is_written(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]
        Address = gen["Address"]

        person = Person(address=Address())
        expect(person.to_bytes()) == b"\x3a\x00"
        expect(Person.from_bytes(b"\x3a\x00").address) == Address()

    def test_empty_message(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Empty = gen["Empty"]

        expect(Empty().to_bytes()) == b""
        expect(Empty.from_bytes(b"\x08\x01")) == Empty()


def describe_unknown_fields():
    def test_skips_unknown_fields(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Address = gen["Address"]

        data = (
            b"\x0a\x01a"  # street
            b"\x48\x01"  # field 9, varint
            b"\x52\x01z"  # field 10, length delimited
            b"\x5d\x00\x00\x00\x00"  # field 11, fixed32
            b"\x61" + b"\x00" * 8  # field 12, fixed64
            + b"\x6b\x08\x01\x6c"  # field 13, group
        )
        expect(Address.from_bytes(data)) == Address(street="a")

    def test_skips_unknown_fields_with_sparse_dispatch(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Sparse = gen["Sparse"]

        data = b"\x08\x05" + b"\xa0\x1f\x01" + b"\xc2\x3e\x02hi"
        expect(Sparse.from_bytes(data)) == Sparse(low=5, high="hi")

    def test_unknown_field_with_invalid_wire_type(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Sparse = gen["Sparse"]

        with raises(DecodeError, match=r"Sparse cannot skip field 500 \(wire type 7\)"):
            Sparse.from_bytes(b"\xa7\x1f")


def describe_oneof():
    def test_getters_follow_selected_variant(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]
        Phone = gen["Person_Phone"]

        person = Person(contact=Phone(phone=42))
        expect(person.get_phone()) == 42
        expect(person.get_email()) == ""
        expect(person.get_office()) == None
        expect(person.to_bytes()) == b"\x80\x01\x2a"

    def test_last_variant_wins(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]
        Email = gen["Person_Email"]
        Phone = gen["Person_Phone"]

        data = Person(contact=Email(email="a@b")).to_bytes()
        data += Person(contact=Phone(phone=5)).to_bytes()

        person = Person.from_bytes(data)
        expect(person.contact) == Phone(phone=5)
        expect(person.get_email()) == ""

    def test_record_variant(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]
        Address = gen["Address"]
        Office = gen["Person_Office"]

        person = Person(contact=Office(office=Address(street="HQ")))
        recovered = Person.from_bytes(person.to_bytes())
        expect(recovered.contact) == Office(office=Address(street="HQ"))
        expect(recovered.get_office()) == Address(street="HQ")


def describe_repeated():
    def test_packed_by_default(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]

        expect(Person(lucky=[1, 2, 3]).to_bytes()) == b"\x42\x03\x01\x02\x03"

    def test_unpacked_when_requested(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]

        expect(Person(unpacked=[1, 2]).to_bytes()) == b"\x90\x01\x01\x90\x01\x02"

    def test_accepts_either_encoding(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]

        packed = Person.from_bytes(b"\x42\x03\x01\x02\x03")
        unpacked = Person.from_bytes(b"\x40\x01\x40\x02\x40\x03")
        expect(packed.lucky) == [1, 2, 3]
        expect(unpacked.lucky) == [1, 2, 3]

        expect(Person.from_bytes(b"\x92\x01\x02\x01\x02").unpacked) == [1, 2]

    def test_occurrences_accumulate(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]

        person = Person.from_bytes(b"\x42\x01\x01\x40\x02\x42\x01\x03")
        expect(person.lucky) == [1, 2, 3]

    def test_enum_lists(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]
        Color = gen["Color"]

        person = Person(palette=[Color.RED, Color.COLOR_UNSPECIFIED])
        expect(person.to_bytes()) == b"\xa2\x01\x02\x01\x00"
        expect(Person.from_bytes(person.to_bytes()).palette) == [Color.RED, Color.COLOR_UNSPECIFIED]

    def test_string_lists_keep_empty_elements(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]

        person = Person(tags=["", "b"])
        expect(person.to_bytes()) == b"\x4a\x00\x4a\x01b"
        expect(Person.from_bytes(person.to_bytes()).tags) == ["", "b"]


def describe_maps():
    def test_entry_encoding(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]

        expect(Person(counts={"a": 1}).to_bytes()) == b"\x5a\x05\x0a\x01a\x10\x01"

    def test_entry_order_does_not_matter(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]

        first = b"\x5a\x05\x0a\x01a\x10\x01"
        second = b"\x5a\x05\x0a\x01b\x10\x02"
        expect(Person.from_bytes(first + second).counts) == {"a": 1, "b": 2}
        expect(Person.from_bytes(second + first).counts) == {"a": 1, "b": 2}

    def test_key_and_value_order_does_not_matter(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]

        expect(Person.from_bytes(b"\x5a\x05\x10\x01\x0a\x01a").counts) == {"a": 1}

    def test_missing_parts_default(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]

        expect(Person.from_bytes(b"\x5a\x03\x0a\x01a").counts) == {"a": 0}
        expect(Person.from_bytes(b"\x5a\x00").counts) == {"": 0}

    def test_message_values(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]
        Address = gen["Address"]

        person = Person(places={1: Address(street="x"), 2: Address()})
        data = person.to_bytes()
        expect(person.size()) == len(data)
        expect(Person.from_bytes(data).places) == {1: Address(street="x"), 2: Address()}


def describe_enums():
    def test_unknown_values_are_preserved(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]
        Color = gen["Color"]

        person = Person.from_bytes(b"\x30\x07")
        expect(isinstance(person.color, Color)) == True
        expect(int(person.color)) == 7
        expect(person.to_bytes()) == b"\x30\x07"


def describe_naming():
    def test_reserved_words_are_escaped(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Keywords = gen["Keywords"]

        message = Keywords(class_="x", size_=3, from_=True)
        data = message.to_bytes()
        expect(data) == b"\x0a\x01x\x10\x03\x18\x01"
        expect(message.size()) == len(data)
        expect(Keywords.from_bytes(data)) == message
        expect(Keywords._field_names) == {1: "class", 2: "size", 3: "from"}


def describe_error_handling():
    def test_reports_field_context(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Address = gen["Address"]

        with raises(DecodeError, match="Address read field 2 'zip' error: cannot read uint32"):
            Address.from_bytes(b"\x12\x01\x00")

    def test_wraps_nested_errors(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Person = gen["Person"]

        with raises(DecodeError) as e:
            Person.from_bytes(b"\x3a\x03\x12\x01\x00")
        expect(str(e.value).startswith("Person read field 7 'address' error: Address read field 2")) == True

    def test_truncated_input(expect):
        gen = gen_code(FILE_DIR + "/messages.proto")
        Address = gen["Address"]

        with raises(DecodeError, match="truncated"):
            Address.from_bytes(b"\x0a\x05ab")
