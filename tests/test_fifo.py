from gbahw.fifo import CAPACITY, Fifo


def test_new_fifo_is_empty():
    assert len(Fifo()) == 0


def test_words_come_out_in_order():
    fifo = Fifo()
    words = [0x11111111, 0x22222222, 0xDEADBEEF]
    for word in words:
        fifo.write_word(word)
    assert len(fifo) == len(words)
    assert [fifo.read_word() for _ in words] == words
    assert len(fifo) == 0


def test_holds_seven_words():
    fifo = Fifo()
    for i in range(7):
        fifo.write_word(i + 10)
    assert len(fifo) == 7
    assert [fifo.read_word() for _ in range(7)] == list(range(10, 17))


def test_overflow_resets():
    fifo = Fifo()
    for i in range(CAPACITY):
        fifo.write_word(i + 1)
    assert len(fifo) == CAPACITY
    fifo.write_word(0xFFFF)
    assert len(fifo) == 0


def test_read_on_empty_keeps_count():
    fifo = Fifo()
    fifo.write_word(0x1234)
    fifo.read_word()
    fifo.read_word()
    assert len(fifo) == 0


def test_wrap_around_preserves_order():
    fifo = Fifo()
    first = list(range(1, CAPACITY + 1))
    for word in first:
        fifo.write_word(word)
    head = [fifo.read_word() for _ in range(3)]
    extra = [100, 200, 300]
    for word in extra:
        fifo.write_word(word)
    rest = [fifo.read_word() for _ in range(CAPACITY)]
    assert head == first[:3]
    assert rest == first[3:] + extra


def test_write_byte_places_value_at_offset():
    fifo = Fifo()
    fifo.write_byte(1, 0xAB)
    assert fifo.read_word() == 0xAB << 8


def test_write_half_places_low_byte_at_offset():
    fifo = Fifo()
    fifo.write_half(2, 0x12)
    assert fifo.read_word() == 0x12 << 16


def test_words_are_truncated_to_32_bits():
    fifo = Fifo()
    fifo.write_word(0x1_2345_6789)
    assert fifo.read_word() == 0x2345_6789


def test_reset_clears_contents():
    fifo = Fifo()
    fifo.write_word(5)
    fifo.reset()
    assert len(fifo) == 0
    assert fifo.read_word() == 0