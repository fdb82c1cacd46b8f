import logging
import typing

import mido


logger = logging.getLogger(__name__)


def list_output_devices () -> typing.List[str]:

	"""Names of the MIDI outputs mido can see, or an empty list if the backend fails."""

	try:
		return list(mido.get_output_names())
	except Exception:
		logger.exception("Could not list MIDI outputs")
		return []


def _prompt_for_device (outputs: typing.List[str]) -> str:

	print("\nAvailable MIDI output devices:\n")

	for i, name in enumerate(outputs, 1):
		print(f"  {i}. {name}")

	print()

	while True:
		try:
			choice = int(input(f"Select a device (1-{len(outputs)}): "))
			if 1 <= choice <= len(outputs):
				return outputs[choice - 1]
		except ValueError:
			pass

		print(f"Enter a number between 1 and {len(outputs)}.")


def select_output_device (device_name: typing.Optional[str] = None, interactive: bool = True) -> typing.Tuple[typing.Optional[str], typing.Optional[typing.Any]]:

	"""
	Open a MIDI output for playback.

	A named device must exist.  Without a name, a single available device is
	used directly; with several, the user is asked to pick one on the console
	when ``interactive`` is set, otherwise the first is used.

	Returns:
		``(device_name, port)``, or ``(None, None)`` when nothing could be opened.
	"""

	outputs = list_output_devices()
	logger.info(f"Available MIDI outputs: {outputs}")

	if not outputs:
		logger.error("No MIDI output devices found")
		return None, None

	if device_name is not None and device_name not in outputs:
		logger.error(f"MIDI output device '{device_name}' not found. Available devices: {outputs}")
		return None, None

	if device_name is not None:
		selected = device_name
	elif len(outputs) == 1 or not interactive:
		selected = outputs[0]
	else:
		selected = _prompt_for_device(outputs)
		print(f"\nTip: set 'output_device: \"{selected}\"' in the playback config to skip this prompt.\n")

	try:
		port = mido.open_output(selected)
	except Exception:
		logger.exception(f"Failed to open MIDI output '{selected}'")
		return None, None

	logger.info(f"Opened MIDI output: {selected}")

	return selected, port
