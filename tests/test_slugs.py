"""Unit tests for slug derivation and collision detection."""
import pytest

from processor.models import PackageRecord
from processor.slugs import PLACEHOLDER_SLUG, derive_slug, detect_collisions, group_names_by_slug


class TestDeriveSlug:
    """Test cases for derive_slug."""

    @pytest.mark.parametrize('name, expected', [
        ('Deep Tissue Massage', 'deep-tissue-massage'),
        ('A  Pkg!', 'a-pkg'),
        ('--Leading and trailing--', 'leading-and-trailing'),
        ('Spa & Sauna (90 min)', 'spa-sauna-90-min'),
        ('UPPER_case.Name', 'upper-case-name'),
        ('Café Crème', 'caf-cr-me'),
    ])
    def test_derive_slug(self, name, expected):
        """Test lowercasing, run collapsing and trimming."""
        assert derive_slug(name) == expected

    @pytest.mark.parametrize('name', [None, '', '   ', '\t\n', '!!!', '---'])
    def test_empty_names_map_to_placeholder(self, name):
        """Test that names with no usable characters never yield an empty slug."""
        assert derive_slug(name) == PLACEHOLDER_SLUG

    @pytest.mark.parametrize('name', [
        'Deep Tissue Massage', 'A  Pkg!', '  x  ', 'Café', None, '42 Things'
    ])
    def test_derive_slug_is_idempotent(self, name):
        """Test that deriving a slug from a slug changes nothing."""
        slug = derive_slug(name)
        assert derive_slug(slug) == slug


class TestDetectCollisions:
    """Test cases for collision detection."""

    def test_collisions_grouped_in_catalog_order(self):
        """Test that differently spelled names sharing a slug form one group."""
        records = [
            PackageRecord(name='A Pkg'),
            PackageRecord(name='Other'),
            PackageRecord(name='A  Pkg!'),
            PackageRecord(name='a-pkg'),
        ]

        collisions = detect_collisions(records)

        assert collisions == {'a-pkg': ['A Pkg', 'A  Pkg!', 'a-pkg']}

    def test_no_collisions(self):
        """Test that unique slugs produce an empty report."""
        records = [PackageRecord(name='One'), PackageRecord(name='Two')]

        assert detect_collisions(records) == {}

    def test_missing_names_collide_on_placeholder(self):
        """Test that nameless records share the placeholder slug."""
        records = [PackageRecord(name=None), PackageRecord(name='  ')]

        assert detect_collisions(records) == {PLACEHOLDER_SLUG: [None, '  ']}

    def test_group_names_by_slug_includes_singletons(self):
        groups = group_names_by_slug([PackageRecord(name='One'), PackageRecord(name='Two')])

        assert groups == {'one': ['One'], 'two': ['Two']}
