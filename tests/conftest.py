"""Shared source fixtures: a small producer -> broker -> consumer module."""

import pytest


PRODUCER_SOURCE = """\
import { EVENT_TYPES } from './events';

export const DRAG_SEQUENCE = {
  name: 'drag-start',
  movements: [
    {
      beats: [
        { beat: 1, event: 'element-drag-started' },
        { beat: 2, event: EVENT_TYPES.ELEMENT_MOVED },
      ],
    },
  ],
};

export const startDragFlow = (conductorEventBus, element, position) => {
  conductorEventBus.startSequence('drag-start', {
    elementId: element.id,
    position,
    timestamp: Date.now(),
  });
};

export function startDropFlow(conductorEventBus, elementId, rawPointerEvent) {
  // the broker reshapes this payload
  conductorEventBus.startSequence('drop', { elementId, rawPointerEvent });
}

function helper(value) {
  return value * 2;
}
"""

BROKER_SOURCE = """\
export class MusicalConductor {
  startSequence(name: string, data: any): void {
    this.queue.push(this.prepareEventData(this.beat, data, this.context));
  }

  private prepareEventData(beat: Beat, sequenceData: any, executionContext: ExecutionContext): any {
    if (beat.event === 'drop') {
      // skip rawPointerEvent, handlers only need ids
      return {
        elementId: sequenceData.elementId,
        zoneId: sequenceData.zoneId || 'canvas',
        sequenceId: executionContext.id,
      };
    }

    const eventData = {
      ...sequenceData,
      sequenceId: executionContext.id,
      beat: beat.beat,
    };
    return eventData;
  }
}
"""

CONSUMER_SOURCE = """\
export function handleDragStart(data) {
  const { elementId } = data;
  if (!data.sequenceId) {
    throw new Error('missing sequence');
  }
  const label = data.label || 'untitled';
  return { elementId, label, x: data.position.x };
}

export const handleDrop = ({ elementId, zoneId }) => {
  return `${elementId} -> ${zoneId}`;
};
"""


@pytest.fixture
def producer_source() -> str:
    return PRODUCER_SOURCE


@pytest.fixture
def broker_source() -> str:
    return BROKER_SOURCE


@pytest.fixture
def consumer_source() -> str:
    return CONSUMER_SOURCE


@pytest.fixture
def flow_module(tmp_path):
    """A module root holding one producer, one broker and one consumer file."""
    root = tmp_path / "canvas"
    root.mkdir()
    (root / "sequence.js").write_text(PRODUCER_SOURCE)
    (root / "MusicalConductor.ts").write_text(BROKER_SOURCE)
    (root / "handlers.js").write_text(CONSUMER_SOURCE)
    return root
