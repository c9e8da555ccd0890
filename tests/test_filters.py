#!/usr/bin/env python3

"""
Unit tests for filter stage planning.
"""

# Standard Library
import os
import sys
import unittest
from decimal import Decimal

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
	sys.path.insert(0, REPO_ROOT)

from audiocutlib.core import filters
from audiocutlib.core.plan import EditPlan
from audiocutlib.core.plan import KeepSegment
from audiocutlib.core.plan import RegionPlan
from audiocutlib.core.plan import SilenceParams

#============================================

def tempo_values(stages: list) -> list:
	return [stage.params for stage in stages if stage.kind == filters.STAGE_TEMPO]

#============================================

class TempoChainTest(unittest.TestCase):
	#============================================
	def test_fast_tempo_splits_into_two_stages(self) -> None:
		stages = filters.build_tempo_chain(3.0)
		self.assertEqual(tempo_values(stages), [Decimal('2.0'), Decimal('1.5')])
		self.assertEqual([stage.to_dict()['params'] for stage in stages], [2.0, 1.5])

	#============================================
	def test_slow_tempo_splits_into_two_stages(self) -> None:
		stages = filters.build_tempo_chain(0.3)
		self.assertEqual(tempo_values(stages), [Decimal('0.5'), Decimal('0.6')])

	#============================================
	def test_unity_tempo_emits_nothing(self) -> None:
		self.assertEqual(filters.build_tempo_chain(1.0), [])
		self.assertEqual(filters.build_tempo_chain('1.0000004'), [])

	#============================================
	def test_in_range_tempo_is_single_stage(self) -> None:
		self.assertEqual(tempo_values(filters.build_tempo_chain(1.25)), [Decimal('1.25')])

	#============================================
	def test_chain_fidelity_over_full_range(self) -> None:
		value = Decimal('0.25')
		while value <= Decimal('4.0'):
			stages = filters.build_tempo_chain(value)
			for multiplier in tempo_values(stages):
				self.assertGreaterEqual(multiplier, Decimal('0.5'))
				self.assertLessEqual(multiplier, Decimal('2.0'))
			product = filters.tempo_chain_product(stages)
			self.assertLessEqual(abs(product - value), Decimal('0.001'), str(value))
			value += Decimal('0.01')

#============================================

class BuildChainTest(unittest.TestCase):
	#============================================
	def test_stage_order(self) -> None:
		builder = filters.FilterGraphBuilder()
		stages = builder.build_chain(10, tempo=2, pitch=3, volume='1.5',
			fade_in=1, fade_out=2)
		self.assertEqual([stage.kind for stage in stages],
			['volume', 'pitch', 'tempo', 'fade', 'fade'])
		fade_in = stages[3].to_dict()['params']
		fade_out = stages[4].to_dict()['params']
		self.assertEqual(fade_in, {'direction': 'in', 'startSeconds': 0.0,
			'durationSeconds': 1.0})
		# fades refer to the 5 s tempo-adjusted output
		self.assertEqual(fade_out, {'direction': 'out', 'startSeconds': 3.0,
			'durationSeconds': 2.0})

	#============================================
	def test_fade_out_start_clamps_at_zero(self) -> None:
		stages = filters.FilterGraphBuilder().build_chain(1, fade_out=3)
		params = stages[0].params
		self.assertEqual(params['startSeconds'], Decimal(0))
		self.assertEqual(params['durationSeconds'], Decimal(1))

	#============================================
	def test_noop_stages_skipped(self) -> None:
		stages = filters.FilterGraphBuilder().build_chain(30, tempo=1, pitch=0,
			volume=1, fade_in=0, fade_out=0)
		self.assertEqual(stages, [])

	#============================================
	def test_zero_volume_is_kept(self) -> None:
		stages = filters.FilterGraphBuilder().build_chain(30, volume=0)
		self.assertEqual(stages, [filters.FilterStage('volume', Decimal(0))])

#============================================

class BuildGraphTest(unittest.TestCase):
	#============================================
	def test_trim_plan_is_single_span(self) -> None:
		plan = EditPlan(120, '10.5', '40.5', tempo=2, fade_in=1)
		graph = filters.FilterGraphBuilder().build(plan)
		self.assertTrue(graph.is_single_span)
		self.assertEqual(graph.seek_offset, Decimal('10.5'))
		self.assertEqual(graph.output_duration, Decimal(15))
		self.assertEqual([stage.kind for stage in graph.stages], ['tempo', 'fade'])

	#============================================
	def test_invert_keeps_outside_material_in_source_order(self) -> None:
		plan = EditPlan(60, 10, 20, invert=True)
		graph = filters.FilterGraphBuilder().build(plan)
		spans = [(source.start, source.end) for source in graph.sources]
		self.assertEqual(spans, [(Decimal(0), Decimal(10)), (Decimal(20), Decimal(60))])
		self.assertEqual(graph.seek_offset, Decimal(0))
		self.assertEqual(graph.output_duration, Decimal(50))

	#============================================
	def test_invert_from_zero_is_single_span(self) -> None:
		plan = EditPlan(60, 0, 20, invert=True, tempo='0.5')
		graph = filters.FilterGraphBuilder().build(plan)
		self.assertTrue(graph.is_single_span)
		self.assertEqual(graph.seek_offset, Decimal(20))
		self.assertEqual(graph.output_duration, Decimal(80))

	#============================================
	def test_silence_plan_uses_keep_segments(self) -> None:
		silence = SilenceParams(-40, '0.5', 0, 30)
		plan = EditPlan(30, 0, 30, silence=silence, fade_out=1)
		plan = plan.with_segments([KeepSegment(0, 5), KeepSegment(8, 30)])
		graph = filters.FilterGraphBuilder().build(plan)
		self.assertEqual(len(graph.sources), 2)
		self.assertEqual(graph.output_duration, Decimal(27))
		self.assertEqual(graph.stages[0].params['startSeconds'], Decimal(26))

	#============================================
	def test_silence_plan_without_segments_raises(self) -> None:
		plan = EditPlan(30, 0, 30, silence=SilenceParams(-40, '0.5', 0, 30))
		with self.assertRaises(RuntimeError):
			filters.FilterGraphBuilder().build(plan)

	#============================================
	def test_regions_carry_their_own_stages(self) -> None:
		regions = [
			RegionPlan('intro', 0, 10, tempo=2),
			RegionPlan('outro', 50, 60, volume='0.5', fade_out=2),
		]
		plan = EditPlan(60, 0, 60, regions=regions)
		graph = filters.FilterGraphBuilder().build(plan)
		self.assertEqual(graph.stages, [])
		self.assertEqual([source.label for source in graph.sources], ['intro', 'outro'])
		self.assertEqual([stage.kind for stage in graph.sources[0].stages], ['tempo'])
		self.assertEqual([stage.kind for stage in graph.sources[1].stages],
			['volume', 'fade'])
		self.assertEqual(graph.output_duration, Decimal(15))

	#============================================
	def test_graph_to_dict(self) -> None:
		graph = filters.FilterGraphBuilder().build(EditPlan(10, 1, 3, volume=2))
		data = graph.to_dict()
		self.assertEqual(data['seekOffset'], 1.0)
		self.assertEqual(data['outputDuration'], 2.0)
		self.assertEqual(data['stages'], [{'kind': 'volume', 'params': 2.0}])

#============================================

def main() -> None:
	"""Run the unit tests."""
	unittest.main()

#============================================

if __name__ == "__main__":
	main()
