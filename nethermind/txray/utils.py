def pprint_list(write_array: list[str], term_width: int) -> list[str]:
    """
    Prints an array of strings to the console, wrapping lines with a max width of term_width

    :param write_array:
    :param term_width:
    :return:
    """
    current_line, output = "", []
    for write_val in write_array:
        if current_line and len(current_line) + len(write_val) + 4 > term_width:
            output.append(current_line.rstrip(", "))
            current_line = ""
        current_line += f"'{write_val}', "
    output.append(current_line.rstrip(", "))
    return output


def shorten_hex(hex_str: str, head: int = 20, tail: int = 8) -> str:
    """
    Elides the middle of long hex strings for console output

    >>> shorten_hex("0x" + "ab" * 40)
    '0xababababababababab...abababab'
    """
    if len(hex_str) <= head + tail + 3:
        return hex_str
    return f"{hex_str[:head]}...{hex_str[-tail:]}"
