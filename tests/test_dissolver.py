"""Tests for the half-edge index and the dissolve of member cells."""

from collections import Counter

import numpy as np
import pytest
from shapely.geometry import LineString, Polygon, box

from dialect_regions.geometry.clipper import EdgeOrigin, clip_cells
from dialect_regions.geometry.dissolver import dissolve, point_in_region
from dialect_regions.geometry.edges import EdgeIndex, remove_spikes
from dialect_regions.geometry.point_index import Site, build_point_index
from dialect_regions.geometry.polygon_ops import boundary_from_rings, enclosing_frame
from dialect_regions.geometry.tessellator import Cell, tessellate


def make_sites(coords: dict[str, tuple[float, float]]) -> list[Site]:
    return [Site(point_id=pid, x=x, y=y, reported=(x, y)) for pid, (x, y) in coords.items()]


def prepare_sites(sites: list[Site], boundary, backend: str = "geos"):
    frame = enclosing_frame((s.xy for s in sites), boundary)
    diagram = clip_cells(tessellate(sites, frame, backend=backend), boundary, frame)
    index = EdgeIndex(diagram)
    return diagram, index, index.adjacency_graph()


def prepare(coords: dict[str, tuple[float, float]], boundary, backend: str = "geos"):
    return prepare_sites(make_sites(coords), boundary, backend)


def border_length(result) -> float:
    return sum(LineString(line).length for line in result.border_lines)


UNIT_SQUARE_CORNERS = {"p1": (0.0, 0.0), "p2": (1.0, 0.0), "p3": (0.0, 1.0), "p4": (1.0, 1.0)}
GRID_3X3 = {f"g{i}{j}": (1.0 + 2 * i, 1.0 + 2 * j) for i in range(3) for j in range(3)}


@pytest.fixture
def square_diagram():
    return prepare(UNIT_SQUARE_CORNERS, box(0, 0, 1, 1))


@pytest.fixture
def random_diagram():
    rng = np.random.default_rng(3)
    coords = {f"s{i}": (float(x), float(y)) for i, (x, y) in enumerate(rng.uniform(0, 10, (40, 2)))}
    boundary = Polygon([(0, 0), (10, 0), (10, 6), (5, 10), (0, 6)])
    return prepare(coords, boundary) + (boundary, sorted(coords))


CROWDED_TERRITORY = [
    [(13.0, 48.0), (25.0, 48.0), (25.0, 56.0), (13.0, 56.0)],
    [(17.0, 51.0), (19.0, 51.0), (19.0, 53.0), (17.0, 53.0)],
    [(26.0, 50.0), (28.0, 50.0), (28.0, 52.0), (26.0, 52.0)],
]


@pytest.fixture(params=["geos", "halfplane"])
def crowded_diagram(request):
    """Lat/lon-scale sites where three places repeat another's coordinate.

    The territory has a lake and an offshore island, and the repeated sites
    are separated only by the coincidence jitter, so their cells meet other
    cells in very short edges.
    """
    rng = np.random.default_rng(16)
    coords = rng.uniform((14, 49), (24, 55), (60, 2)).tolist()
    records = [(f"s{i:02d}", f"{y}, {x}") for i, (x, y) in enumerate(coords)]
    records += [(f"d{k}", records[k * 7][1]) for k in range(3)]
    sites = build_point_index(records).sites
    boundary = boundary_from_rings(CROWDED_TERRITORY)
    return prepare_sites(sites, boundary, backend=request.param) + (boundary, sorted(s.point_id for s in sites))


class TestEdgeIndex:
    """Test vertex snapping, noding and the adjacency graph."""

    def test_shared_edges_have_one_key(self, square_diagram):
        """The bisector between two cells is the same edge from both sides."""
        _, index, _ = square_diagram

        shared = [key for key, hes in index.edges() if len({h.point_id for h in hes}) == 2]
        assert len(shared) == 4

    def test_adjacency_of_corner_cells(self, square_diagram):
        """Diagonal cells only touch at a point and are not neighbours."""
        _, _, graph = square_diagram

        assert graph.has_edge("p1", "p2")
        assert graph.has_edge("p1", "p3")
        assert graph.has_edge("p2", "p4")
        assert graph.has_edge("p3", "p4")
        assert not graph.has_edge("p1", "p4")
        assert not graph.has_edge("p2", "p3")
        assert graph["p1"]["p2"]["length"] == pytest.approx(0.5)

    def test_t_junction_is_noded(self):
        """An edge spanning two neighbour cells is split at their shared vertex."""
        boundary = box(0, 0, 2, 2)
        frame = box(-1, -1, 3, 3)
        cells = [
            Cell("left", box(0, 0, 1, 2)),
            Cell("low", box(1, 0, 2, 1)),
            Cell("high", box(1, 1, 2, 2)),
        ]
        index = EdgeIndex(clip_cells(cells, boundary, frame))
        graph = index.adjacency_graph()

        assert graph.has_edge("left", "low")
        assert graph.has_edge("left", "high")
        assert graph.has_edge("low", "high")

        diagram = clip_cells(cells, boundary, frame)
        result = dissolve(diagram, index, {"left"})
        assert len(result.border_lines) == 1
        assert LineString(result.border_lines[0]).equals(LineString([(1, 0), (1, 2)]))

    def test_sliver_apex_does_not_reuse_an_edge(self):
        """Both legs of a sliver pass a neighbour vertex near the apex; the spike is cut off."""
        cells = [
            Cell("sliver", Polygon([(1, 1), (2, 0.99), (2, 1.01)])),
            Cell("fan", Polygon([(0, 0), (1.005, 1.0), (0, 2)])),
        ]
        diagram = clip_cells(cells, box(0, 0, 2, 2), box(-1, -1, 3, 3), snap_tolerance=1e-3)

        index = EdgeIndex(diagram)

        per_cell = Counter((h.point_id, h.key) for h in index.half_edges)
        assert max(per_cell.values()) == 1
        assert sum(1 for h in index.half_edges if h.point_id == "sliver") == 3
        assert sum(1 for h in index.half_edges if h.point_id == "fan") == 3


class TestRemoveSpikes:
    """Test cleanup of noded rings."""

    @staticmethod
    def ids(ring):
        return [vid for vid, _ in remove_spikes([(vid, EdgeOrigin.VORONOI) for vid in ring])]

    def test_clean_ring_unchanged(self):
        assert self.ids([0, 1, 2, 3]) == [0, 1, 2, 3]

    def test_repeated_vertex_collapsed(self):
        assert self.ids([0, 1, 1, 2]) == [0, 1, 2]

    def test_inner_spike_removed(self):
        assert self.ids([0, 1, 5, 1, 2]) == [0, 1, 2]

    def test_nested_spike_removed(self):
        assert self.ids([0, 1, 5, 6, 5, 1, 2]) == [0, 1, 2]

    @pytest.mark.parametrize("ring", [[5, 1, 2, 3, 1], [1, 2, 3, 1, 5]])
    def test_spike_across_ring_start_removed(self, ring):
        assert sorted(self.ids(ring)) == [1, 2, 3]

    def test_degenerate_ring_is_empty(self):
        assert self.ids([0, 1, 0]) == []

    def test_tag_of_following_segment_kept(self):
        """After a spike is cut, the vertex carries the tag of the segment that continues the ring."""
        ring = [(0, EdgeOrigin.VORONOI), (1, EdgeOrigin.VORONOI), (5, EdgeOrigin.VORONOI),
                (1, EdgeOrigin.BOUNDARY), (2, EdgeOrigin.VORONOI)]

        assert remove_spikes(ring)[1] == (1, EdgeOrigin.BOUNDARY)


class TestDissolveScenarios:
    """Unit square with a site at every corner."""

    def test_all_members_fill_square_without_borders(self, square_diagram):
        diagram, index, graph = square_diagram

        result = dissolve(diagram, index, {"p1", "p2", "p3", "p4"}, layer_id="L1", adjacency=graph)

        assert len(result.region.polygons) == 1
        assert result.region.to_shapely().symmetric_difference(box(0, 0, 1, 1)).area < 1e-12
        assert result.border_lines == []
        assert result.cluster_count == 1

    def test_left_members_fill_left_half(self, square_diagram):
        """Border is the vertical bisector only, never the square's own edges."""
        diagram, index, graph = square_diagram

        result = dissolve(diagram, index, {"p1", "p3"}, layer_id="L1", adjacency=graph)

        assert result.region.to_shapely().symmetric_difference(box(0, 0, 0.5, 1)).area < 1e-12
        assert len(result.border_lines) == 1
        assert LineString(result.border_lines[0]).equals(LineString([(0.5, 0), (0.5, 1)]))

    def test_territory_rim_included_when_configured(self, square_diagram):
        diagram, index, _ = square_diagram

        result = dissolve(diagram, index, {"p1", "p2", "p3", "p4"}, include_territory_rim=True)

        assert len(result.border_lines) == 1
        ring = result.border_lines[0]
        assert ring[0] == ring[-1]
        assert LineString(ring).length == pytest.approx(4.0)

    def test_diagonal_members_stay_separate(self, square_diagram):
        """Cells touching at a single vertex give two region polygons."""
        diagram, index, graph = square_diagram

        result = dissolve(diagram, index, {"p1", "p4"}, adjacency=graph)

        assert len(result.region.polygons) == 2
        assert result.region.area == pytest.approx(0.5)
        assert result.cluster_count == 2
        assert border_length(result) == pytest.approx(2.0)

    def test_no_members_is_empty(self, square_diagram):
        diagram, index, _ = square_diagram

        result = dissolve(diagram, index, set(), layer_id="L1")

        assert result.is_empty
        assert result.region.rings == []
        assert result.member_count == 0

    def test_unknown_members_ignored(self, square_diagram):
        diagram, index, _ = square_diagram

        result = dissolve(diagram, index, {"p1", "nope"})

        assert result.member_count == 1
        assert result.region.area == pytest.approx(0.25)


class TestDissolveTopology:
    """Holes, islands and clusters."""

    def test_enclave_becomes_hole(self):
        """A non-member cell surrounded by members is a hole with a closed border."""
        diagram, index, graph = prepare(GRID_3X3, box(0, 0, 6, 6))
        members = set(GRID_3X3) - {"g11"}

        result = dissolve(diagram, index, members, adjacency=graph)

        assert len(result.region.polygons) == 1
        assert len(result.region.polygons[0].holes) == 1
        assert result.region.area == pytest.approx(32.0)
        assert len(result.region.rings) == 2
        assert len(result.border_lines) == 1
        assert result.border_lines[0][0] == result.border_lines[0][-1]
        assert border_length(result) == pytest.approx(8.0)

    def test_single_enclave_member(self):
        diagram, index, _ = prepare(GRID_3X3, box(0, 0, 6, 6))

        result = dissolve(diagram, index, {"g11"})

        assert result.region.to_shapely().symmetric_difference(box(2, 2, 4, 4)).area < 1e-9
        assert border_length(result) == pytest.approx(8.0)
        assert not result.rebuilt

    def test_open_ring_rebuilt_from_cells(self):
        """A member ring that cannot be closed is replaced by the union of the member cells."""
        diagram, index, _ = prepare(GRID_3X3, box(0, 0, 6, 6))
        del index.by_key[next(h.key for h in index.half_edges if h.point_id == "g11")]

        result = dissolve(diagram, index, {"g11"})

        assert result.rebuilt
        assert result.region.area == pytest.approx(4.0)
        assert result.region.to_shapely().symmetric_difference(box(2, 2, 4, 4)).area < 1e-9
        assert result.region.polygons[0].to_shapely().exterior.is_ccw

    def test_boundary_lake_kept_in_region(self):
        lake = box(4, 4, 6, 6)
        diagram, index, _ = prepare({"only": (2, 2)}, box(0, 0, 10, 10).difference(lake))

        result = dissolve(diagram, index, {"only"})

        assert len(result.region.polygons[0].holes) == 1
        assert result.region.area == pytest.approx(96.0)
        assert result.border_lines == []

    def test_mainland_and_island(self):
        """Members on two disjoint boundary rings give two disconnected polygons."""
        boundary = boundary_from_rings([
            [(0, 0), (10, 0), (10, 10), (0, 10)],
            [(20, 0), (24, 0), (24, 4), (20, 4)],
        ])
        diagram, index, graph = prepare({"a": (2, 5), "b": (8, 5), "c": (22, 2)}, boundary)

        result = dissolve(diagram, index, {"a", "c"}, adjacency=graph)

        assert len(result.region.polygons) == 2
        areas = sorted(p.to_shapely().area for p in result.region.polygons)
        assert areas == pytest.approx([16.0, 50.0])
        assert len(result.border_lines) == 1
        assert LineString(result.border_lines[0]).equals(LineString([(5, 0), (5, 10)]))
        assert result.cluster_count == 2


class TestDissolveProperties:
    """Invariants over a random site set."""

    def test_region_and_complement_reconstruct_territory(self, random_diagram):
        diagram, index, _, boundary, ids = random_diagram
        members = set(ids[::3])

        inside = dissolve(diagram, index, members)
        outside = dissolve(diagram, index, set(ids) - members)

        assert inside.region.area + outside.region.area == pytest.approx(boundary.area, rel=1e-9)
        overlap = inside.region.to_shapely().intersection(outside.region.to_shapely())
        assert overlap.area == pytest.approx(0.0, abs=1e-9)

    def test_region_matches_union_of_member_cells(self, random_diagram):
        diagram, index, _, _, ids = random_diagram
        members = set(ids[:15])

        result = dissolve(diagram, index, members)

        expected = sum(diagram.cell(pid).area for pid in members)
        assert result.region.area == pytest.approx(expected, rel=1e-9)
        for polygon in result.region.polygons:
            assert polygon.to_shapely().is_valid

    def test_members_lie_in_region(self, random_diagram):
        diagram, index, _, boundary, ids = random_diagram
        members = set(ids[::2])

        result = dissolve(diagram, index, members)

        for pid in members:
            cell = diagram.cell(pid)
            if not cell.is_empty:
                assert point_in_region(result.region, cell.polygon.representative_point().coords[0])

    def test_growth_is_monotonic(self, random_diagram):
        """Adding members never shrinks the region."""
        diagram, index, _, _, ids = random_diagram

        areas = [dissolve(diagram, index, set(ids[:k])).region.area for k in range(0, len(ids) + 1, 4)]

        assert all(b >= a - 1e-9 for a, b in zip(areas, areas[1:]))

    def test_border_empty_iff_no_contact_with_non_members(self, random_diagram):
        diagram, index, graph, _, ids = random_diagram

        for members in (set(ids), set(ids[:10]), {ids[0]}):
            result = dissolve(diagram, index, members)
            touches = any(
                (a in members) != (b in members) for a, b in graph.edges()
            )
            assert bool(result.border_lines) == touches

    def test_dissolve_is_deterministic(self, random_diagram):
        diagram, index, _, _, ids = random_diagram
        members = set(ids[5:25])

        first = dissolve(diagram, index, members)
        second = dissolve(diagram, index, members)

        assert first.region == second.region
        assert first.border_lines == second.border_lines

    def test_halfplane_backend_gives_same_region(self):
        coords = dict(GRID_3X3)
        coords["g11"] = (3.2, 2.9)
        members = {"g00", "g01", "g11"}

        results = []
        for backend in ("geos", "halfplane"):
            diagram, index, _ = prepare(coords, box(0, 0, 6, 6), backend=backend)
            results.append(dissolve(diagram, index, members).region.to_shapely())

        assert results[0].symmetric_difference(results[1]).area == pytest.approx(0.0, abs=1e-9)


class TestDissolveCoincidentSites:
    """Invariants when repeated coordinates leave very short cell edges, for both backends."""

    @staticmethod
    def split_pairs(ids: list[str]) -> set[str]:
        """Members that separate every repeated site from the place it repeats."""
        regular = {pid for pid in ids if pid.startswith("s") and int(pid[1:]) % 4 == 1}
        return regular | {"d0", "d2"}

    def test_region_and_complement_reconstruct_territory(self, crowded_diagram):
        diagram, index, _, boundary, ids = crowded_diagram
        members = self.split_pairs(ids)

        inside = dissolve(diagram, index, members)
        outside = dissolve(diagram, index, set(ids) - members)

        assert inside.region.area + outside.region.area == pytest.approx(boundary.area, rel=1e-6)
        overlap = inside.region.to_shapely().intersection(outside.region.to_shapely())
        assert overlap.area == pytest.approx(0.0, abs=1e-6 * boundary.area)

    def test_region_matches_union_of_member_cells(self, crowded_diagram):
        diagram, index, _, boundary, ids = crowded_diagram
        members = self.split_pairs(ids)

        result = dissolve(diagram, index, members)

        expected = sum(diagram.cell(pid).area for pid in members)
        assert result.region.area == pytest.approx(expected, rel=1e-6)
        for polygon in result.region.polygons:
            assert polygon.to_shapely().is_valid

    def test_repeated_site_alone(self, crowded_diagram):
        """A jittered site on its own still gets the whole of its cell."""
        diagram, index, _, _, _ = crowded_diagram
        cell = diagram.cell("d1")

        result = dissolve(diagram, index, {"d1"})

        if cell.is_empty:
            assert result.region.is_empty
        else:
            assert result.region.area == pytest.approx(cell.area, rel=1e-6)

    def test_growth_is_monotonic(self, crowded_diagram):
        diagram, index, _, boundary, ids = crowded_diagram

        sizes = [*range(0, len(ids), 5), len(ids)]
        areas = [dissolve(diagram, index, set(ids[:k])).region.area for k in sizes]

        assert all(b >= a - 1e-9 * boundary.area for a, b in zip(areas, areas[1:]))
        assert areas[-1] == pytest.approx(boundary.area, rel=1e-6)

    def test_dissolve_is_deterministic(self, crowded_diagram):
        diagram, index, _, _, ids = crowded_diagram
        members = self.split_pairs(ids)

        first = dissolve(diagram, index, members)
        second = dissolve(diagram, index, members)

        assert first.region == second.region
        assert first.border_lines == second.border_lines
        assert first.rebuilt == second.rebuilt
