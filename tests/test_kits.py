"""Tests for kit and cookbook discovery."""

from kitgen.kits import discover_kits, list_recipes, load_cookbook, load_kit

from .conftest import write_recipe


def make_kit(root, name, kit_yml):
    kit_dir = root / name
    kit_dir.mkdir(parents=True)
    (kit_dir / "kit.yml").write_text(kit_yml)
    return kit_dir


class TestLoadKit:
    def test_name_falls_back_to_directory(self, tmp_path):
        kit = load_kit(make_kit(tmp_path, "web", "description: Web bits\n"))

        assert kit.name == "web"
        assert kit.description == "Web bits"
        assert kit.default_cookbook is None

    def test_defaults_and_custom_patterns(self, tmp_path):
        kit_dir = make_kit(tmp_path, "web", "name: webkit\ncookbooks: ./books/*/cookbook.yml\ndefaults:\n  cookbook: crud\n")
        (kit_dir / "books" / "crud").mkdir(parents=True)
        (kit_dir / "books" / "crud" / "cookbook.yml").write_text("name: crud\n")

        kit = load_kit(kit_dir)

        assert kit.name == "webkit"
        assert kit.default_cookbook == "crud"
        assert list(kit.cookbooks()) == ["crud"]

    def test_cookbook_directory_alias(self, tmp_path):
        kit_dir = make_kit(tmp_path, "web", "name: web\n")
        (kit_dir / "cookbooks" / "crud-ops").mkdir(parents=True)
        (kit_dir / "cookbooks" / "crud-ops" / "cookbook.yml").write_text("name: crud\n")

        kit = load_kit(kit_dir)

        assert kit.find_cookbook("crud") is kit.find_cookbook("crud-ops")
        assert list(list_recipes(kit)) == ["crud"]

    def test_unreadable_yaml_is_ignored(self, tmp_path):
        kit = load_kit(make_kit(tmp_path, "web", "name: [unclosed\n"))

        assert kit.name == "web"


class TestCookbook:
    def test_recipes_follow_patterns(self, tmp_path):
        book = tmp_path / "crud"
        write_recipe(book / "resource", "name: resource\n")
        write_recipe(book / "nested" / "page", "name: page\n")
        (book / "cookbook.yml").write_text("recipes:\n  - ./*/recipe.yml\n  - ./nested/*/recipe.yml\ndefaults:\n  recipe: resource\n")

        cookbook = load_cookbook(book / "cookbook.yml")

        assert cookbook.name == "crud"
        assert cookbook.default_recipe == "resource"
        assert sorted(cookbook.recipes()) == ["page", "resource"]
        assert cookbook.find_recipe("page") == book / "nested" / "page" / "recipe.yml"
        assert cookbook.find_recipe("missing") is None


class TestDiscoverKits:
    def test_first_directory_wins(self, tmp_path):
        make_kit(tmp_path / "local", "web", "name: web\ndescription: local\n")
        make_kit(tmp_path / "global", "web", "name: web\ndescription: global\n")
        make_kit(tmp_path / "global", "api", "name: api\n")
        (tmp_path / "global" / "not-a-kit").mkdir()

        kits = discover_kits([tmp_path / "local", tmp_path / "missing", tmp_path / "global"])

        assert sorted(kits) == ["api", "web"]
        assert kits["web"].description == "local"
