import json
import textwrap
import unittest

from cvtsudoers.contract_store import contracts
from cvtsudoers.core.defaults import init_defaults
from cvtsudoers.core.errors import ConversionError
from cvtsudoers.core.execution_context import ExecutionContext, Identity
from cvtsudoers.engine.json_export import SCHEMA_NAME, build_json, render_json
from cvtsudoers.engine.parser import SudoersParser
from cvtsudoers.engine.tree import DefaultsEntry, PolicyTree

CTX = ExecutionContext(
    identity=Identity(name="root", uid=0, gid=0, home="/root", shell="/bin/sh"),
    canonical_hostname="localhost",
    short_hostname="localhost",
)

POLICY = textwrap.dedent(
    """
    # sample policy
    Defaults	env_reset
    Defaults	mail_badpass
    Defaults	secure_path="/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin"
    Defaults:alice	!lecture
    Defaults	env_keep += "LANG LC_ALL"

    User_Alias ADMINS = alice, %wheel
    Cmnd_Alias PKG = /usr/bin/apt, /usr/bin/dpkg -i

    root	ALL=(ALL:ALL) ALL
    ADMINS	ALL=(root) NOPASSWD: PKG, /bin/ls, !/usr/bin/su
    bob	web1 = sha256:0123abcd /bin/true : db1 = /bin/cat
    """
)


def _doc(text: str = POLICY):
    defaults = init_defaults()
    parser = SudoersParser(context=CTX, defaults=defaults)
    tree = parser.parse_text(text, "sudoers")
    return build_json(tree, defaults), tree, defaults


class TestBuildJson(unittest.TestCase):
    def test_section_order(self) -> None:
        doc, _, _ = _doc()
        self.assertEqual(list(doc.keys()), ["Defaults", "User_Aliases", "Command_Aliases", "User_Specs"])

    def test_empty_policy(self) -> None:
        doc, _, _ = _doc("# nothing here\n\n")
        self.assertEqual(doc, {})

    def test_defaults_grouped_by_binding(self) -> None:
        doc, _, _ = _doc()
        self.assertEqual(
            doc["Defaults"],
            [
                {
                    "Options": [
                        {"env_reset": True},
                        {"mail_badpass": True},
                        {"secure_path": "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin"},
                    ]
                },
                {
                    "Binding": {"type": "user", "members": [{"username": "alice"}]},
                    "Options": [{"lecture": False}],
                },
                {"Options": [{"operation": "list_add", "env_keep": ["LANG", "LC_ALL"]}]},
            ],
        )

    def test_aliases(self) -> None:
        doc, _, _ = _doc()
        self.assertEqual(doc["User_Aliases"], {"ADMINS": [{"username": "alice"}, {"usergroup": "wheel"}]})
        self.assertEqual(
            doc["Command_Aliases"],
            {"PKG": [{"command": "/usr/bin/apt"}, {"command": "/usr/bin/dpkg -i"}]},
        )

    def test_user_specs(self) -> None:
        doc, _, _ = _doc()
        specs = doc["User_Specs"]
        self.assertEqual(len(specs), 4)
        self.assertEqual(
            specs[0],
            {
                "User_List": [{"username": "root"}],
                "Host_List": [{"hostname": "ALL"}],
                "Cmnd_Specs": [
                    {
                        "runasusers": [{"username": "ALL"}],
                        "runasgroups": [{"usergroup": "ALL"}],
                        "Commands": [{"command": "ALL"}],
                    }
                ],
            },
        )
        self.assertEqual(
            specs[1]["Cmnd_Specs"],
            [
                {
                    "runasusers": [{"username": "root"}],
                    "Options": [{"authenticate": False}],
                    "Commands": [
                        {"cmndalias": "PKG"},
                        {"command": "/bin/ls"},
                        {"negated": True, "command": "/usr/bin/su"},
                    ],
                }
            ],
        )
        self.assertEqual(specs[2]["User_List"], [{"username": "bob"}])
        self.assertEqual(specs[2]["Cmnd_Specs"][0]["Commands"], [{"command": "/bin/true", "sha256": "0123abcd"}])
        self.assertEqual(specs[3]["Host_List"], [{"hostname": "db1"}])

    def test_numeric_members(self) -> None:
        doc, _, _ = _doc("#0 ALL = (%#10 : #20) /bin/id\n")
        spec = doc["User_Specs"][0]
        self.assertEqual(spec["User_List"], [{"userid": 0}])
        self.assertEqual(spec["Cmnd_Specs"][0]["runasusers"], [{"groupid": 10}])
        self.assertEqual(spec["Cmnd_Specs"][0]["runasgroups"], [{"groupid": 20}])

    def test_output_matches_schema(self) -> None:
        doc, _, _ = _doc()
        self.assertEqual(contracts().validate(SCHEMA_NAME, doc), [])


class TestRenderJson(unittest.TestCase):
    def test_render_is_indented_json(self) -> None:
        _, tree, defaults = _doc()
        text = render_json(tree, defaults)
        self.assertTrue(text.endswith("}\n"))
        self.assertIn('\n    "Defaults": [', text)
        self.assertEqual(json.loads(text)["User_Specs"][0]["User_List"], [{"username": "root"}])

    def test_non_finite_value_is_refused(self) -> None:
        tree = PolicyTree(defaults=[DefaultsEntry(name="passwd_timeout", op="=", value=float("inf"))])
        with self.assertRaises(ConversionError) as cm:
            render_json(tree, init_defaults())
        self.assertEqual(cm.exception.code, "export.invalid_json")


if __name__ == "__main__":
    unittest.main()
