"""Captured "tc -s qdisc" reports used by the tests"""

# fq_codel + noqueue noise, then a diffserv4 egress cake and its ingress IFB
DIFFSERV4_REPORT = """\
qdisc noqueue 0: dev lo root refcnt 2 
 Sent 0 bytes 0 pkt (dropped 0, overlimits 0 requeues 0) 
 backlog 0b 0p requeues 0
qdisc fq_codel 0: dev eth0 root refcnt 2 limit 10240p flows 1024 quantum 1514 target 5ms interval 100ms memory_limit 32Mb ecn drop_batch 64 
 Sent 11217682446 bytes 9470558 pkt (dropped 0, overlimits 0 requeues 24) 
 backlog 0b 0p requeues 24
  maxpacket 1494 drop_overlimit 0 new_flow_count 299 ecn_mark 0
  new_flows_len 0 old_flows_len 0
qdisc cake 800d: dev eth1 root refcnt 2 bandwidth 50Mbit diffserv4 dual-srchost nat nowash no-ack-filter split-gso rtt 100ms atm overhead 48 memlimit 32Mb 
 Sent 453393887 bytes 1599017 pkt (dropped 2515, overlimits 2072988 requeues 0) 
 backlog 0b 0p requeues 0
 memory used: 238656b of 32Mb
 capacity estimate: 50Mbit
 min/max network layer size:           28 /    1500
 min/max overhead-adjusted size:      106 /    1749
 average network hdr offset:           14

                   Bulk  Best Effort        Video        Voice
  thresh       3125Kbit       50Mbit       25Mbit    12500Kbit
  target         5.81ms          5ms          5ms          5ms
  interval        101ms        100ms        100ms        100ms
  pk_delay          0us        545us         35us        646us
  av_delay          0us         42us          6us         56us
  sp_delay          0us          5us          2us          1us
  backlog            0b           0b           0b           0b
  pkts                0      1592616          209         8707
  bytes               0    455805269        21362      1223812
  way_inds            0        25972            0           19
  way_miss            0        17449          130          338
  way_cols            0            0            0            0
  drops               0         2515            0            0
  marks               0            0            0            0
  ack_drop            0            0            0            0
  sp_flows            0            1            0            1
  bk_flows            0            1            0            0
  un_flows            0            0            0            0
  max_len             0        32300          551          590
  quantum           300         1514          762          381

qdisc ingress ffff: dev eth1 parent ffff:fff1 ---------------- 
 Sent 3158081766 bytes 2777506 pkt (dropped 0, overlimits 0 requeues 0) 
 backlog 0b 0p requeues 0
qdisc cake 800e: dev ifb4eth1 root refcnt 2 bandwidth 50Mbit diffserv4 dual-dsthost nat nowash ingress no-ack-filter split-gso rtt 100ms atm overhead 48 memlimit 32Mb 
 Sent 3194029040 bytes 2748544 pkt (dropped 28962, overlimits 3328299 requeues 0) 
 backlog 0b 0p requeues 0
 memory used: 1425600b of 32Mb
 capacity estimate: 50Mbit
 min/max network layer size:           46 /    1500
 min/max overhead-adjusted size:      106 /    1749
 average network hdr offset:           14

                   Bulk  Best Effort        Video        Voice
  thresh       3125Kbit       50Mbit       25Mbit    12500Kbit
  target         5.81ms          5ms          5ms          5ms
  interval        101ms        100ms        100ms        100ms
  pk_delay          0us        760us       6.73ms       7.09ms
  av_delay          0us        117us       1.49ms       2.44ms
  sp_delay          0us         11us         33us        113us
  backlog            0b           0b           0b           0b
  pkts                0      2767990         2708         6808
  bytes               0   3226939367      2577105      6440994
  way_inds            0        36687            0            0
  way_miss            0        17134           54           63
  way_cols            0            0            0            0
  drops               0        28926            3           33
  marks               0       117224            0            0
  ack_drop            0            0            0            0
  sp_flows            0            2            1            1
  bk_flows            0            1            0            0
  un_flows            0            0            0            0
  max_len             0        68338        41760        20384
  quantum           300         1514          762          381
"""


# cake_mq on a two-queue NIC: parent 1: with hardware queues 1:1 and 1:2
CAKE_MQ_REPORT = """\
qdisc cake_mq 1: dev eth0 root refcnt 6 
qdisc cake 0: dev eth0 parent 1:1 refcnt 2 bandwidth 100Mbit diffserv4 dual-srchost nat nowash no-ack-filter split-gso rtt 100ms atm overhead 48 memlimit 32Mb 
 Sent 200000000 bytes 700000 pkt (dropped 100, overlimits 1000000 requeues 0) 
 backlog 0b 0p requeues 0
 memory used: 100000b of 32Mb
 capacity estimate: 100Mbit
 min/max network layer size:           28 /    1500
 min/max overhead-adjusted size:      106 /    1749
 average network hdr offset:           14

                   Bulk  Best Effort        Video        Voice
  thresh       6250Kbit      100Mbit       50Mbit    25000Kbit
  target          5.8ms          5ms          5ms          5ms
  interval        101ms        100ms        100ms        100ms
  pk_delay          0us        400us         20us        500us
  av_delay          0us         30us          4us         40us
  sp_delay          0us          3us          1us          1us
  backlog            0b           0b           0b           0b
  pkts                0       697000          100         4200
  bytes               0    201000000        10000       600000
  way_inds            0        10000            0           10
  way_miss            0         8000           50          150
  way_cols            0            0            0            0
  drops               0          100            0            0
  marks               0            0            0            0
  ack_drop            0            0            0            0
  sp_flows            0            1            0            1
  bk_flows            0            1            0            0
  un_flows            0            0            0            0
  max_len             0        16000          300          400
  quantum           300         1514          762          381

qdisc cake 0: dev eth0 parent 1:2 refcnt 2 bandwidth 100Mbit diffserv4 dual-srchost nat nowash no-ack-filter split-gso rtt 100ms atm overhead 48 memlimit 32Mb 
 Sent 250000000 bytes 900000 pkt (dropped 150, overlimits 1200000 requeues 5) 
 backlog 0b 0p requeues 0
 memory used: 120000b of 32Mb
 capacity estimate: 100Mbit
 min/max network layer size:           28 /    1500
 min/max overhead-adjusted size:      106 /    1749
 average network hdr offset:           14

                   Bulk  Best Effort        Video        Voice
  thresh       6250Kbit      100Mbit       50Mbit    25000Kbit
  target          5.8ms          5ms          5ms          5ms
  interval        101ms        100ms        100ms        100ms
  pk_delay          0us        600us         30us        700us
  av_delay          0us         50us          6us         60us
  sp_delay          0us          5us          2us          2us
  backlog            0b           0b           0b           0b
  pkts                0       897000          150         6300
  bytes               0    251000000        15000       900000
  way_inds            0        15000            0           15
  way_miss            0        10000           80          200
  way_cols            0            0            0            0
  drops               0          150            0            0
  marks               0            0            0            0
  ack_drop            0            0            0            0
  sp_flows            0            1            0            1
  bk_flows            0            1            0            0
  un_flows            0            0            0            0
  max_len             0        24000          400          500
  quantum           300         1514          762          381

"""


# single-tin besteffort table ("Tin 0") with a "raw overhead 0" header
BESTEFFORT_REPORT = """\
qdisc noqueue 0: dev lo root refcnt 2 
 Sent 0 bytes 0 pkt (dropped 0, overlimits 0 requeues 0) 
 backlog 0b 0p requeues 0
qdisc mq 0: dev eth0 root 
 Sent 2945616358 bytes 1973175 pkt (dropped 0, overlimits 0 requeues 749) 
 backlog 0b 0p requeues 749
qdisc cake 8005: dev eth1 root refcnt 17 bandwidth 22500Kbit besteffort triple-isolate nat nowash no-ack-filter split-gso rtt 100ms raw overhead 0 
 Sent 137306352 bytes 1053588 pkt (dropped 1449, overlimits 1694970 requeues 49) 
 backlog 0b 0p requeues 49
 memory used: 4097Kb of 4Mb
 capacity estimate: 22500Kbit
 min/max network layer size:           42 /    1514
 min/max overhead-adjusted size:       42 /    1514
 average network hdr offset:           14

                  Tin 0
  thresh      22500Kbit
  target            5ms
  interval        100ms
  pk_delay       3.26ms
  av_delay       1.21ms
  sp_delay          4us
  backlog            0b
  pkts          1055037
  bytes       137632238
  way_inds           86
  way_miss          274
  way_cols            0
  drops            1449
  marks               0
  ack_drop            0
  sp_flows            1
  bk_flows            1
  un_flows            0
  max_len         16654
  quantum           686
"""


DIFFSERV3_REPORT = """\
qdisc cake 8020: dev wan0 root refcnt 2 bandwidth 9500Kbit diffserv3 dual-srchost nat wash rtt 50ms ptm overhead 30 mpu 68 memlimit 8Mb
 Sent 98765 bytes 321 pkt (dropped 4, overlimits 17 requeues 2)
 backlog 1514b 1p requeues 2
 memory used: 12Kb of 8Mb
 capacity estimate: 9500Kbit

                   Bulk  Best Effort        Voice
  thresh        593Kbit     9500Kbit     2375Kbit
  target         30.6ms          5ms        7.7ms
  interval        126ms        100ms        103ms
  pk_delay          1.2s        2.5ms       900us
  av_delay          0us        1.1ms        80us
  sp_delay          0us         12us         3us
  backlog            0b        1514b           0b
  pkts               10          300           11
  bytes            1000        95000         2765
  drops               0            4            0
  max_len          1000         1514          590
  quantum           300          300          300
  future_row     x      y       z
"""


DIFFSERV8_TIN_REPORT = """\
qdisc cake 8030: dev eth5 root refcnt 2 bandwidth unlimited diffserv8 flows rtt 100ms noatm overhead 0
 Sent 10 bytes 1 pkt (dropped 0, overlimits 0 requeues 0)
 backlog 0b 0p requeues 0

                  Tin 0        Tin 1        Tin 2
  thresh           0bit         0bit         0bit
  pk_delay          0us         10us         20us
  pkts                1            0            0
"""


# cake child pointing at a cake_mq parent that is not in the report
ORPHAN_CHILD_REPORT = """\
qdisc cake 0: dev eth7 parent 9:1 refcnt 2 bandwidth 100Mbit besteffort rtt 100ms raw overhead 0
 Sent 5000 bytes 50 pkt (dropped 1, overlimits 2 requeues 0)
 backlog 0b 0p requeues 0
"""


LONELY_MQ_PARENT_REPORT = """\
qdisc cake_mq 2: dev eth8 root refcnt 6
 Sent 0 bytes 0 pkt (dropped 0, overlimits 0 requeues 0)
 backlog 0b 0p requeues 0
"""


JSON_REPORT = (
    '[{"kind":"fq_codel","dev":"eth9","handle":"0:"},'
    '{"kind":"cake","dev":"eth0","handle":"800d:",'
    '"options":{"bandwidth":5000000,"diffserv":"diffserv4","nat":true,"wash":false,'
    '"atm":"atm","mpu":64,"overhead":48,"rtt":100000},'
    '"bytes":123,"packets":456,"drops":7,"overlimits":8,"requeues":9,'
    '"memory_used":100,"memory_limit":33554432,"capacity_estimate":5000000,'
    '"min_network_size":28,"max_network_size":1500,"avg_hdr_offset":14,'
    '"tins":[{"threshold_rate":3125,"sent_bytes":0,"drops":0,"max_pkt_len":0,"flow_quantum":300},'
    '{"threshold_rate":5000000,"sent_bytes":1000,"drops":2,"max_pkt_len":1514,"flow_quantum":1514}]}]'
)


def minimal_cake_report(params: str, iface: str = "eth0") -> str:
    """One cake qdisc on iface with params appended to the header line"""
    return (
        f"qdisc cake 8011: dev {iface} root refcnt 2 bandwidth 100Mbit {params}\n"
        " Sent 0 bytes 0 pkt (dropped 0, overlimits 0 requeues 0)\n"
        " backlog 0b 0p requeues 0\n"
        " memory used: 14Kb of 4Mb\n"
        " capacity estimate: 100Mbit\n"
    )
