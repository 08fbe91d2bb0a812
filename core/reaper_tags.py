"""Names of the Reaper project chunks and nodes used by the converters."""

# Project
PROJECT_ROOT = 'REAPER_PROJECT'
PROJECT_TEMPO = 'TEMPO'
PROJECT_RENDER_METADATA = 'RENDER_METADATA'
PROJECT_AUTHOR = 'AUTHOR'
PROJECT_NOTES = 'NOTES'
PROJECT_TIME_LOCKMODE = 'TIMELOCKMODE'
PROJECT_TIME_ENV_LOCKMODE = 'TEMPOENVLOCKMODE'
PROJECT_MARKER = 'MARKER'
PROJECT_TEMPO_ENVELOPE = 'TEMPOENVEX'

METADATA_TAG = 'TAG'

# Master track
MASTER_COLOR = 'MASTERPEAKCOL'
MASTER_NUMBER_OF_CHANNELS = 'MASTER_NCH'
MASTER_MUTE_SOLO = 'MASTERMUTESOLO'
MASTER_VOLUME_PAN = 'MASTER_VOLUME'
MASTER_CHUNK_FXCHAIN = 'MASTERFXLIST'
MASTER_VOLUME_ENVELOPE = 'MASTERVOLENV2'
MASTER_PANORAMA_ENVELOPE = 'MASTERPANENV2'

# Tracks
CHUNK_TRACK = 'TRACK'
TRACK_NAME = 'NAME'
TRACK_COLOR = 'PEAKCOL'
TRACK_STRUCTURE = 'ISBUS'
TRACK_NUMBER_OF_CHANNELS = 'NCHAN'
TRACK_MUTE_SOLO = 'MUTESOLO'
TRACK_VOLUME_PAN = 'VOLPAN'
TRACK_AUX_RECEIVE = 'AUXRECV'

# Envelopes
TRACK_VOLUME_ENVELOPE = 'VOLENV2'
TRACK_PANORAMA_ENVELOPE = 'PANENV2'
TRACK_MUTE_ENVELOPE = 'MUTEENV'
TRACK_AUX_ENVELOPE = 'AUXVOLENV'
ENVELOPE_POINT = 'PT'

# Items
CHUNK_ITEM = 'ITEM'
ITEM_NAME = 'NAME'
ITEM_NOTES = 'NOTES'
ITEM_MUTE = 'MUTE'
ITEM_POSITION = 'POSITION'
ITEM_LENGTH = 'LENGTH'
ITEM_FADEIN = 'FADEIN'
ITEM_FADEOUT = 'FADEOUT'
ITEM_SAMPLE_OFFSET = 'SOFFS'
ITEM_PLAYRATE = 'PLAYRATE'
ITEM_LOOP = 'LOOP'
CHUNK_ITEM_SOURCE = 'SOURCE'
SOURCE_HASDATA = 'HASDATA'
SOURCE_FILE = 'FILE'

SOURCE_MIDI = 'MIDI'
SOURCE_WAVE = 'WAVE'
SOURCE_FLAC = 'FLAC'

# Devices
CHUNK_FXCHAIN = 'FXCHAIN'
FXCHAIN_BYPASS = 'BYPASS'
FXCHAIN_PARAMETER_ENVELOPE = 'PARMENV'
CHUNK_CLAP = 'CLAP'
CHUNK_VST = 'VST'

PLUGIN_CLAP = 'CLAP'
PLUGIN_CLAP_INSTRUMENT = 'CLAPi'
PLUGIN_VST_2 = 'VST'
PLUGIN_VST_2_INSTRUMENT = 'VSTi'
PLUGIN_VST_3 = 'VST3'
PLUGIN_VST_3_INSTRUMENT = 'VST3i'

INSTRUMENT_TAGS = (PLUGIN_CLAP_INSTRUMENT, PLUGIN_VST_2_INSTRUMENT, PLUGIN_VST_3_INSTRUMENT)


def is_instrument_plugin(tag: str) -> bool:
    return tag in INSTRUMENT_TAGS
